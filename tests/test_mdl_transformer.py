import textwrap

import pytest

from markdownlang.mdl_transformer import MdlTransformer, parse, extract_text
from markdownlang.mdl_document import MarkdownItDocumentParser
from markdownlang.mdl_datatypes import (
    Program, PrintStatement, AssignmentStatement, VariableDeclaration, FunctionCallStatement,
    ConditionalBlock, BreakStatement, InputStatement,
    Literal, Identifier, TemplateLiteral, ExpressionSyntaxError,
)


def src(text: str) -> Program:
    return parse(textwrap.dedent(text).lstrip())


# --- Document parser adapter ---

def test_document_tree_shape_and_lines():
    doc = MarkdownItDocumentParser().parse_document("# main\n\n## *x > 1*\n\n[a, b](lib.md#f)\n")
    heading, cond, para = doc['children']
    assert heading == {'tag': 'heading', 'depth': 1, 'line': 1,
                       'children': [{'tag': 'text', 'text': 'main'}]}
    assert cond['depth'] == 2 and cond['line'] == 3
    assert cond['children'][0]['tag'] == 'emphasis'
    link = para['children'][0]
    assert link['tag'] == 'link' and link['url'] == 'lib.md#f'
    assert para['line'] == 5


def test_extract_text_ignores_inline_code():
    node = {'tag': 'paragraph', 'children': [
        {'tag': 'text', 'text': 'x = 1 '},
        {'tag': 'inline-code', 'text': 'a comment'},
    ]}
    assert extract_text(node) == 'x = 1'


def test_strong_paragraph_is_a_single_node():
    doc = MarkdownItDocumentParser().parse_document("# main\n\n**hello**\n")
    para = doc['children'][1]
    assert para['children'] == [{'tag': 'strong', 'children': [{'tag': 'text', 'text': 'hello'}]}]

    program = MdlTransformer().transform(doc)
    (stmt,) = program.get('main').body
    assert stmt == PrintStatement(Literal('hello'), 3)


# --- Functions, parameters and declarations ---

def test_functions_and_parameters():
    program = src("""
        # main

        [3](#double)

        # double

        1. n
        2. unused

        **{n * 2}**
    """)
    assert set(program.functions) == {'main', 'double'}
    assert program.get('double').parameters == ['n', 'unused']
    (stmt,) = program.get('double').body
    assert isinstance(stmt, PrintStatement)
    assert stmt.expression.operator == '*'


def test_later_heading_overwrites_function():
    program = src("""
        # f

        **one**

        # f

        **two**
    """)
    (stmt,) = program.get('f').body
    assert stmt.expression == Literal('two')


def test_declarations_from_bullet_list():
    program = src("""
        # main

        - total = 0
        - name
        - some prose here
    """)
    body = program.get('main').body
    assert len(body) == 2
    assert body[0].variable == 'total'
    assert body[0].value.value == 0
    assert body[1] == VariableDeclaration('name', None, body[1].line)


def test_statements_before_first_function_are_ignored():
    program = src("""
        **floating**

        # main

        **inside**
    """)
    assert list(program.functions) == ['main']
    assert len(program.get('main').body) == 1


# --- Paragraph dispatch ---

def test_print_forms():
    program = src("""
        # main

        **{a + 1}**

        **Hi {name}!**

        **plain words**
    """)
    whole, template, literal = program.get('main').body
    assert whole.expression.operator == '+'
    assert isinstance(template.expression, TemplateLiteral)
    assert literal.expression == Literal('plain words')


def test_assignment_and_compound_assignment():
    program = src("""
        # main

        x = 5

        x += 2

        x == 5
    """)
    body = program.get('main').body
    assert len(body) == 2
    assert body[0].operator is None and body[0].line == 3
    assert body[1].operator == '+' and body[1].line == 5


def test_call_links():
    program = src("""
        # main

        [n - 1, "a, b"](#count)

        [](./lib/math.md#add)

        [1](https://example.com/docs/a#b.md#go)

        [](helper)
    """)
    local, external, url, bare = program.get('main').body
    assert local == FunctionCallStatement('count', None, local.arguments, 3)
    assert len(local.arguments) == 2
    assert local.arguments[1].value == "a, b"
    assert external.function_name == 'add' and external.external_ref == './lib/math.md'
    assert external.arguments == []
    # Split on the last '#'
    assert url.external_ref == 'https://example.com/docs/a#b.md'
    assert url.function_name == 'go'
    assert bare.function_name == 'helper' and bare.external_ref is None


def test_blockquote_is_input():
    program = src("""
        # main

        > answer
    """)
    assert program.get('main').body == [InputStatement('answer', 3)]


def test_code_blocks_are_comments():
    program = src("""
        # main

        ```
        x = 1
        ```

        **ok**
    """)
    assert len(program.get('main').body) == 1


# --- Heading-depth nesting ---

def test_nested_conditionals_and_breaks():
    program = src("""
        # main

        ## *a*

        ### *b*

        **ab**

        ---

        **a only**

        ## *c*

        **c**

        ---

        **rest**
    """)
    cond_a, cond_c, rest = program.get('main').body
    assert isinstance(cond_a, ConditionalBlock) and cond_a.condition == Identifier('a')
    cond_b, a_only = cond_a.body
    assert cond_b.condition == Identifier('b')
    assert isinstance(cond_b.body[0], PrintStatement)
    assert isinstance(cond_b.body[1], BreakStatement)
    assert a_only.expression == Literal('a only')
    assert isinstance(cond_c.body[-1], BreakStatement)
    assert rest.expression == Literal('rest')


def test_skipped_depth_heading_is_dropped():
    program = src("""
        # main

        ### *x*

        **printed unconditionally**
    """)
    (stmt,) = program.get('main').body
    assert isinstance(stmt, PrintStatement)


def test_plain_heading_closes_open_conditionals():
    program = src("""
        # main

        ## *x*

        **inside**

        ## Notes

        **outside**
    """)
    cond, outside = program.get('main').body
    assert len(cond.body) == 1
    assert outside.expression == Literal('outside')


def test_thematic_break_at_function_level_stays_put():
    program = src("""
        # main

        **one**

        ---

        **two**
    """)
    body = program.get('main').body
    assert [type(s) for s in body] == [PrintStatement, BreakStatement, PrintStatement]


@pytest.mark.parametrize("rule", ["---", "***", "___", "- - -"])
def test_thematic_break_spellings_close_the_conditional(rule):
    program = src(f"""
        # main

        ## *x*

        **inside**

        {rule}

        **after**
    """)
    cond, after = program.get('main').body
    assert isinstance(cond.body[-1], BreakStatement)
    assert after.expression == Literal('after')


def test_transform_accepts_plain_dict_tree():
    doc = {'tag': 'document', 'children': [
        {'tag': 'heading', 'depth': 1, 'children': [{'tag': 'text', 'text': 'main'}], 'line': 1},
        {'tag': 'paragraph', 'line': 2, 'children': [
            {'tag': 'strong', 'children': [{'tag': 'text', 'text': '{1 + 1}'}]},
        ]},
    ]}
    program = MdlTransformer().transform(doc)
    (stmt,) = program.get('main').body
    assert stmt.line == 2
    assert stmt.expression.operator == '+'


def test_expression_syntax_error_carries_line():
    with pytest.raises(ExpressionSyntaxError) as exc:
        src("""
            # main

            - x = (1 +
        """)
    assert exc.value.line == 3
    assert str(exc.value).startswith("Line 3: ")
