"""
Module file grammar definition.

This module contains the Lark grammar for the Starlark dialect accepted in
module files, plus the indentation post-lexer that the grammar relies on.
The grammar is deliberately more permissive than a module file: `if`, `for`,
`def`, `lambda` and `load` all parse, and are rejected later by the syntax
checker so the user gets a targeted message instead of a parse error.
"""

from lark.indenter import DedentError, Indenter

module_file_grammar = r"""
    start: (_NEWLINE | _stmt)*

    _stmt: _simple_stmt | _compound_stmt
    _simple_stmt: _small_stmt (";" _small_stmt)* ";"? _NEWLINE
    _small_stmt: expr_stmt | assign_stmt | aug_assign_stmt | pass_stmt
               | break_stmt | continue_stmt | return_stmt | load_stmt

    // --- Simple statements ---
    expr_stmt: testlist
    assign_stmt: testlist "=" testlist
    aug_assign_stmt: testlist AUG_OP testlist
    !pass_stmt: "pass"
    !break_stmt: "break"
    !continue_stmt: "continue"
    !return_stmt: "return" [testlist]

    load_stmt: "load" "(" STRING ("," load_binding)+ ","? ")"
    ?load_binding: STRING -> load_symbol
                 | NAME "=" STRING -> load_alias

    // --- Compound statements ---
    _compound_stmt: if_stmt | for_stmt | def_stmt
    if_stmt: "if" test ":" suite elif_clause* [else_clause]
    elif_clause: "elif" test ":" suite
    else_clause: "else" ":" suite
    for_stmt: "for" loop_vars "in" testlist ":" suite
    def_stmt: "def" NAME "(" [parameters] ")" ":" suite
    suite: _simple_stmt | _NEWLINE _INDENT _stmt+ _DEDENT

    parameters: parameter ("," parameter)* ","?
    ?parameter: NAME -> mandatory_param
              | NAME "=" test -> optional_param
              | "*" [NAME] -> star_param
              | "**" NAME -> star_star_param

    ?loop_vars: expr | loop_vars_tuple
    loop_vars_tuple: expr (("," expr)+ ","? | ",")

    // --- Expressions ---
    ?testlist: test | testlist_tuple
    testlist_tuple: test (("," test)+ ","? | ",")

    ?test: or_test "if" or_test "else" test -> conditional_expr
         | or_test
         | lambdef
    lambdef: "lambda" [parameters] ":" test

    ?or_test: and_test ("or" and_test)*
    ?and_test: not_test ("and" not_test)*
    ?not_test: "not" not_test -> not_expr
             | comparison
    ?comparison: expr (comp_op expr)?
    !comp_op: "<" | ">" | "==" | ">=" | "<=" | "!=" | "in" | "not" "in"

    ?expr: xor_expr (_bitor_op xor_expr)*
    ?xor_expr: and_expr (_xor_op and_expr)*
    ?and_expr: shift_expr (_bitand_op shift_expr)*
    ?shift_expr: arith_expr (_shift_op arith_expr)*
    ?arith_expr: term (_add_op term)*
    ?term: factor (_mul_op factor)*
    ?factor: _unary_op factor -> unary_expr
           | primary_expr

    !_bitor_op: "|"
    !_xor_op: "^"
    !_bitand_op: "&"
    !_shift_op: "<<" | ">>"
    !_add_op: "+" | "-"
    !_mul_op: "*" | "/" | "//" | "%"
    !_unary_op: "+" | "-" | "~"

    ?primary_expr: primary_expr "(" [arguments] ")" -> call_expr
                 | primary_expr "[" test "]" -> index_expr
                 | primary_expr "[" slice_bound ":" slice_bound [slice_step] "]" -> slice_expr
                 | primary_expr "." NAME -> dot_expr
                 | atom
    slice_bound: test?
    slice_step: ":" slice_bound

    ?atom: NAME -> identifier
         | INT -> int_literal
         | FLOAT -> float_literal
         | STRING -> string_literal
         | LONG_STRING -> string_literal
         | "(" test ")"
         | "(" _tuple_items? ")" -> tuple_expr
         | "[" _list_items? "]" -> list_expr
         | "[" test comp_clauses "]" -> list_comprehension
         | "{" _dict_items? "}" -> dict_expr
         | "{" entry comp_clauses "}" -> dict_comprehension

    _tuple_items: test (("," test)+ ","? | ",")
    _list_items: test ("," test)* ","?
    _dict_items: entry ("," entry)* ","?
    entry: test ":" test

    comp_clauses: comp_for (comp_for | comp_if)*
    comp_for: "for" loop_vars "in" or_test
    comp_if: "if" or_test

    arguments: argument ("," argument)* ","?
    ?argument: test -> positional_arg
             | NAME "=" test -> keyword_arg
             | "*" test -> star_arg
             | "**" test -> star_star_arg

    // --- Terminals ---
    AUG_OP: "+=" | "-=" | "*=" | "/=" | "//=" | "%=" | "&=" | "|=" | "^=" | "<<=" | ">>="
    NAME: /[a-zA-Z_]\w*/
    INT: /0[xX][0-9a-fA-F]+|0[oO][0-7]+|0[bB][01]+|[1-9][0-9]*|0/
    FLOAT.2: /(\d+\.\d*|\.\d+)([eE][+-]?\d+)?|\d+[eE][+-]?\d+/
    STRING.2: /[rR]?("(?!"").*?(?<!\\)(\\\\)*?"|'(?!'').*?(?<!\\)(\\\\)*?')/
    LONG_STRING.2: /[rR]?(\"\"\".*?(?<!\\)(\\\\)*?\"\"\"|'''.*?(?<!\\)(\\\\)*?''')/s

    _NEWLINE: ( /\r?\n[\t ]*/ | COMMENT )+
    COMMENT: /#[^\n]*/

    %ignore /[\t \f]+/
    %ignore /\\[\t \f]*\r?\n/
    %ignore COMMENT
    %declare _INDENT _DEDENT
"""


class BadDedent(DedentError):
    """An outdented line that does not line up with any enclosing block."""

    def __init__(self, line, column):
        self.line = line
        self.column = column
        super().__init__("unindent does not match any outer indentation level")


class ModuleFileIndenter(Indenter):
    """Turns leading whitespace into _INDENT/_DEDENT tokens, ignoring newlines inside brackets."""

    NL_type = '_NEWLINE'
    OPEN_PAREN_types = ['LPAR', 'LSQB', 'LBRACE']
    CLOSE_PAREN_types = ['RPAR', 'RSQB', 'RBRACE']
    INDENT_type = '_INDENT'
    DEDENT_type = '_DEDENT'
    tab_len = 8

    def handle_NL(self, token):
        try:
            yield from super().handle_NL(token)
        except DedentError:
            indent_str = token.rsplit('\n', 1)[1]
            raise BadDedent(token.end_line, len(indent_str) + 1)
