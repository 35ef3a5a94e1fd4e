"""
Compilation of a parsed module file into an executable Program.

Compilation is two passes over the syntax tree:

1. `Resolver` checks scoping and the static rules of the language (names
   are defined, globals are bound once, `return`/`break`/`continue` appear
   where they may, parameter and argument lists are well ordered).
2. `Emitter` writes equivalent Python source, one statement per line,
   recording for every line and every expression the source `Location` it
   came from. The source is compiled to a code object; `eval.exec_file_program`
   runs it and maps failures back through these tables.
"""
import itertools
import keyword

from modfile.errors import Location, SyntaxErrors, SyntaxIssue
from modfile.eval import LOAD, TICK, UNIVERSE_NAMES
from modfile.syntax import (
    AssignmentStatement,
    DefStatement,
    ForStatement,
    Identifier,
    IfStatement,
    IndexExpression,
    KeywordArgument,
    ListExpression,
    LoadStatement,
    MandatoryParameter,
    OptionalParameter,
    PositionalArgument,
    StarArgument,
    StarParameter,
    StarStarArgument,
    StarStarParameter,
)
from modfile.visitor import NODE_KINDS, SyntaxTreeVisitor, require_handlers

CONSTANTS = ("True", "False", "None")

# Hooks installed in every program's globals by exec_file_program.
RESERVED = (TICK, LOAD)

_ARGUMENT_RANKS = {
    PositionalArgument: (0, "positional argument"),
    KeywordArgument: (1, "keyword argument"),
    StarArgument: (2, "*args"),
    StarStarArgument: (3, "**kwargs"),
}


def _target_names(target):
    if isinstance(target, Identifier):
        return {target.name}
    if isinstance(target, ListExpression):
        names = set()
        for element in target.elements:
            names |= _target_names(element)
        return names
    return set()


def bound_names(statements, augmented=True):
    """
    Names bound by a block, not counting nested functions, lambdas or comprehensions.

    Augmented assignments bind in function bodies; at file level they only
    update an existing global, so callers pass `augmented=False` there.
    """
    names = set()
    for statement in statements:
        if isinstance(statement, AssignmentStatement):
            if augmented or statement.op is None:
                names |= _target_names(statement.lhs)
        elif isinstance(statement, ForStatement):
            names |= _target_names(statement.vars)
            names |= bound_names(statement.body, augmented)
        elif isinstance(statement, IfStatement):
            names |= bound_names(statement.then_block, augmented)
            names |= bound_names(statement.else_block or [], augmented)
        elif isinstance(statement, DefStatement):
            names.add(statement.identifier.name)
        elif isinstance(statement, LoadStatement):
            names |= {binding.local.name for binding in statement.bindings}
    return names


class _Scope:
    def __init__(self, kind, parent, names=()):
        self.kind = kind  # "function" or "comprehension"
        self.parent = parent
        self.names = set(names)


class Resolver(SyntaxTreeVisitor):
    """
    Static checks on a whole file. Errors are collected; `resolve` raises
    SyntaxErrors with all of them.
    """

    def __init__(self, module):
        self.module = module
        semantics = module.semantics
        self.allow_toplevel_rebinding = bool(getattr(semantics, "allow_toplevel_rebinding", False))
        self._errors = []
        self._scope = None
        self._globals = set()
        self._bindings = {}
        self._loop_depth = 0
        self._function_depth = 0
        self._block_depth = 0

    @property
    def globals(self):
        return sorted(self._bindings)

    def error(self, location, message):
        self._errors.append(SyntaxIssue(location=location, message=message))

    def resolve(self, file):
        self._errors = []
        self._bindings = {}
        self._globals = bound_names(file.statements, augmented=False)
        self.visit_file(file)
        if self._errors:
            raise SyntaxErrors(self._errors)

    # --- Names ---

    def _check_name(self, identifier):
        name = identifier.name
        if keyword.iskeyword(name) and name not in CONSTANTS:
            self.error(identifier.location, f"keyword '{name}' not supported")
            return False
        if name in RESERVED:
            self.error(identifier.location, f"name '{name}' is reserved")
            return False
        return True

    def _is_defined(self, name):
        scope = self._scope
        while scope is not None:
            if name in scope.names:
                return True
            scope = scope.parent
        return (name in self._globals
                or name in self.module.predeclared
                or name in UNIVERSE_NAMES)

    def visit_identifier(self, node):
        if self._check_name(node) and not self._is_defined(node.name):
            self.error(node.location, f"name '{node.name}' is not defined")

    def _bind(self, identifier):
        if not self._check_name(identifier):
            return
        name = identifier.name
        if name in CONSTANTS:
            self.error(identifier.location, f"cannot reassign constant '{name}'")
            return
        if self._scope is None:
            previous = self._bindings.get(name)
            if previous is None:
                self._bindings[name] = identifier.location
            elif not self.allow_toplevel_rebinding:
                self.error(identifier.location, f"'{name}' redeclared at {previous}")
        elif self._scope.kind == "comprehension":
            self._scope.names.add(name)

    def _bind_target(self, target, augmented=False):
        if isinstance(target, Identifier):
            if augmented:
                self.visit_identifier(target)
            else:
                self._bind(target)
        elif isinstance(target, ListExpression):
            if augmented:
                self.error(target.location,
                           "cannot perform augmented assignment on a list or tuple expression")
                return
            for element in target.elements:
                self._bind_target(element)
        elif isinstance(target, IndexExpression):
            self.visit(target.object)
            self.visit(target.key)
        else:
            kind = NODE_KINDS[type(target)].replace("_", " ")
            self.error(target.location, f"cannot assign to {kind}")

    # --- Statements ---

    def visit_block(self, statements):
        self._block_depth += 1
        super().visit_block(statements)
        self._block_depth -= 1

    def visit_assignment_statement(self, node):
        self._bind_target(node.lhs, augmented=node.op is not None)
        self.visit(node.rhs)

    def visit_for_statement(self, node):
        self.visit(node.iterable)
        self._bind_target(node.vars)
        self._loop_depth += 1
        self.visit_block(node.body)
        self._loop_depth -= 1

    def visit_def_statement(self, node):
        self._bind(node.identifier)
        self._function(node.parameters, lambda: self.visit_block(node.body), bound_names(node.body))

    def visit_return_statement(self, node):
        if self._function_depth == 0:
            self.error(node.location, "return statements must be inside a function")
        super().visit_return_statement(node)

    def visit_flow_statement(self, node):
        if node.kind != "pass" and self._loop_depth == 0:
            self.error(node.location, f"{node.kind} statement must be inside a for loop")

    def visit_load_statement(self, node):
        if self._block_depth:
            self.error(node.location, "load statement not at top level")
        for binding in node.bindings:
            if binding.original.startswith("_"):
                self.error(binding.location,
                           f"symbol '{binding.original}' is private and cannot be imported")
            self._bind(binding.local)

    # --- Functions ---

    def _check_parameters(self, parameters):
        seen = set()
        optional = False
        star = None
        star_star = False
        for parameter in parameters:
            if star_star:
                self.error(parameter.location, "parameter may not follow **kwargs")
            identifier = parameter.identifier
            if identifier is not None:
                self._check_name(identifier)
                if identifier.name in CONSTANTS:
                    self.error(identifier.location, f"cannot reassign constant '{identifier.name}'")
                if identifier.name in seen:
                    self.error(identifier.location, f"duplicate parameter: {identifier.name}")
                seen.add(identifier.name)
            if isinstance(parameter, MandatoryParameter):
                if optional and star is None:
                    self.error(parameter.location,
                               f"required parameter '{identifier.name}' may not follow an optional parameter")
            elif isinstance(parameter, OptionalParameter):
                if star is None:
                    optional = True
            elif isinstance(parameter, StarParameter):
                if star is not None:
                    self.error(parameter.location, "multiple * parameters not allowed")
                star = parameter
            elif isinstance(parameter, StarStarParameter):
                star_star = True
        if star is not None and star.identifier is None:
            after = parameters[parameters.index(star) + 1:]
            if not any(isinstance(p, (MandatoryParameter, OptionalParameter)) for p in after):
                self.error(star.location, "bare * must be followed by keyword-only parameters")
        return seen

    def _function(self, parameters, visit_body, locals_):
        names = self._check_parameters(parameters)
        for parameter in parameters:
            if isinstance(parameter, OptionalParameter):
                self.visit(parameter.default)
        saved_scope, saved_loops = self._scope, self._loop_depth
        self._scope = _Scope("function", saved_scope, names | locals_)
        self._loop_depth = 0
        self._function_depth += 1
        try:
            visit_body()
        finally:
            self._function_depth -= 1
            self._scope, self._loop_depth = saved_scope, saved_loops

    def visit_lambda_expression(self, node):
        self._function(node.parameters, lambda: self.visit(node.body), set())

    # --- Expressions ---

    def visit_comprehension(self, node):
        saved = self._scope
        scope = _Scope("comprehension", saved)
        for i, clause in enumerate(node.clauses):
            if i == 0:
                # The first iterable is evaluated in the enclosing scope.
                self.visit(clause.iterable)
                self._scope = scope
                self._bind_target(clause.vars)
            else:
                self.visit(clause)
        self.visit(node.body)
        self._scope = saved

    def visit_comprehension_for(self, node):
        self.visit(node.iterable)
        self._bind_target(node.vars)

    def visit_call_expression(self, node):
        last_rank, last_name = -1, None
        keywords = set()
        for argument in node.arguments:
            rank, name = _ARGUMENT_RANKS[type(argument)]
            if rank < last_rank or (rank == last_rank and rank >= 2):
                self.error(argument.location, f"{name} may not follow {last_name}")
            else:
                last_rank, last_name = rank, name
            if isinstance(argument, KeywordArgument):
                if argument.name.name in keywords:
                    self.error(argument.location, f"duplicate keyword argument: {argument.name.name}")
                keywords.add(argument.name.name)
        super().visit_call_expression(node)

    def visit_keyword_argument(self, node):
        self._check_name(node.name)
        self.visit(node.value)

    def visit_dot_expression(self, node):
        self.visit(node.object)
        if node.field.name.startswith("_"):
            self.error(node.field.location, f"cannot access private field '{node.field.name}'")



class Emitter:
    """
    Writes Python source for a resolved file.

    Expressions are fully parenthesized and written on the line of their
    statement. For each line the emitter keeps the statement's Location and
    a list of `(start, end, Location)` spans, one per expression, in UTF-8
    byte columns to match the column offsets CPython reports for bytecode.
    """

    def __init__(self):
        self.lines = []
        self.line_locations = []
        self.spans = []
        self._indent = 0
        self._parts = None
        self._col = 0
        self._line_spans = None
        self._location = None
        self._module = None

    # --- Output ---

    def _begin(self, location):
        prefix = "    " * self._indent
        self._parts = [prefix]
        self._col = len(prefix)
        self._line_spans = []
        self._location = location

    def _write(self, text):
        self._parts.append(text)
        self._col += len(text.encode("utf-8"))

    def _end(self):
        self.lines.append("".join(self._parts))
        self.line_locations.append(self._location)
        self.spans.append(self._line_spans)
        self._parts = None

    def _line(self, location, text):
        self._begin(location)
        self._write(text)
        self._end()

    def _tick(self, location):
        self._line(location, f"{TICK}()")

    def _dispatch(self, node):
        getattr(self, "_emit_" + NODE_KINDS[type(node)])(node)

    def _expr(self, node):
        start = self._col
        self._dispatch(node)
        self._line_spans.append((start, self._col, node.location))

    def _comma_separated(self, nodes):
        for i, node in enumerate(nodes):
            if i:
                self._write(", ")
            self._expr(node)

    def _body(self, statements, location):
        self._indent += 1
        self._tick(location)
        for statement in statements:
            self._dispatch(statement)
        self._indent -= 1

    def emit_file(self, file):
        for statement in file.statements:
            self._tick(statement.location)
            self._dispatch(statement)

    # --- Expressions ---

    def _emit_identifier(self, node):
        self._write(node.name)

    def _emit_int_literal(self, node):
        self._write(repr(node.value))

    _emit_float_literal = _emit_string_literal = _emit_int_literal

    def _emit_list_expression(self, node):
        if not node.is_tuple:
            self._write("[")
            self._comma_separated(node.elements)
            self._write("]")
            return
        self._write("(")
        self._comma_separated(node.elements)
        if len(node.elements) == 1:
            self._write(",")
        self._write(")")

    def _emit_dict_entry(self, node):
        self._expr(node.key)
        self._write(": ")
        self._expr(node.value)

    def _emit_dict_expression(self, node):
        self._write("{")
        self._comma_separated(node.entries)
        self._write("}")

    def _emit_comprehension_for(self, node):
        self._write(" for ")
        self._expr(node.vars)
        self._write(" in ")
        self._expr(node.iterable)

    def _emit_comprehension_if(self, node):
        self._write(" if ")
        self._expr(node.condition)

    def _emit_comprehension(self, node):
        self._write("{" if node.is_dict else "[")
        self._expr(node.body)
        for clause in node.clauses:
            self._dispatch(clause)
        self._write("}" if node.is_dict else "]")

    def _emit_positional_argument(self, node):
        self._expr(node.value)

    def _emit_keyword_argument(self, node):
        self._write(node.name.name + "=")
        self._expr(node.value)

    def _emit_star_argument(self, node):
        self._write("*")
        self._expr(node.value)

    def _emit_star_star_argument(self, node):
        self._write("**")
        self._expr(node.value)

    def _emit_call_expression(self, node):
        self._expr(node.function)
        self._write("(")
        self._comma_separated(node.arguments)
        self._write(")")

    def _emit_dot_expression(self, node):
        self._expr(node.object)
        self._write("." + node.field.name)

    def _emit_index_expression(self, node):
        self._expr(node.object)
        self._write("[")
        self._expr(node.key)
        self._write("]")

    def _emit_slice_expression(self, node):
        self._expr(node.object)
        self._write("[")
        for i, part in enumerate((node.lo, node.hi, node.step)):
            if i:
                self._write(":")
            if part is not None:
                self._expr(part)
        self._write("]")

    def _emit_unary_operation(self, node):
        self._write("(" + node.op + (" " if node.op == "not" else ""))
        self._expr(node.operand)
        self._write(")")

    def _emit_binary_operation(self, node):
        self._write("(")
        self._expr(node.lhs)
        self._write(f" {node.op} ")
        self._expr(node.rhs)
        self._write(")")

    def _emit_conditional_expression(self, node):
        self._write("(")
        self._expr(node.then_case)
        self._write(" if ")
        self._expr(node.condition)
        self._write(" else ")
        self._expr(node.else_case)
        self._write(")")

    def _emit_mandatory_parameter(self, node):
        self._write(node.identifier.name)

    def _emit_optional_parameter(self, node):
        self._write(node.identifier.name + "=")
        self._expr(node.default)

    def _emit_star_parameter(self, node):
        self._write("*" + (node.identifier.name if node.identifier is not None else ""))

    def _emit_star_star_parameter(self, node):
        self._write("**" + node.identifier.name)

    def _parameters(self, parameters):
        for i, parameter in enumerate(parameters):
            if i:
                self._write(", ")
            self._dispatch(parameter)

    def _emit_lambda_expression(self, node):
        self._write("(lambda")
        if node.parameters:
            self._write(" ")
            self._parameters(node.parameters)
        self._write(": ")
        self._expr(node.body)
        self._write(")")

    # --- Statements ---

    def _emit_expression_statement(self, node):
        self._begin(node.location)
        self._expr(node.expression)
        self._end()

    def _emit_assignment_statement(self, node):
        self._begin(node.location)
        self._expr(node.lhs)
        self._write(f" {node.op or ''}= ")
        self._expr(node.rhs)
        self._end()

    def _emit_if_statement(self, node, keyword="if"):
        self._begin(node.location)
        self._write(keyword + " ")
        self._expr(node.condition)
        self._write(":")
        self._end()
        self._body(node.then_block, node.location)
        else_block = node.else_block
        if else_block is None:
            return
        if len(else_block) == 1 and isinstance(else_block[0], IfStatement) and else_block[0].is_elif:
            self._emit_if_statement(else_block[0], keyword="elif")
            return
        self._line(else_block[0].location, "else:")
        self._body(else_block, else_block[0].location)

    def _emit_for_statement(self, node):
        self._begin(node.location)
        self._write("for ")
        self._expr(node.vars)
        self._write(" in ")
        self._expr(node.iterable)
        self._write(":")
        self._end()
        self._body(node.body, node.location)

    def _emit_def_statement(self, node):
        self._begin(node.location)
        self._write(f"def {node.identifier.name}(")
        self._parameters(node.parameters)
        self._write("):")
        self._end()
        self._body(node.body, node.location)

    def _emit_return_statement(self, node):
        self._begin(node.location)
        self._write("return")
        if node.result is not None:
            self._write(" ")
            self._expr(node.result)
        self._end()

    def _emit_flow_statement(self, node):
        self._line(node.location, node.kind)

    def _emit_load_binding(self, node):
        self._line(node.location, f"{node.local.name} = {LOAD}({self._module!r}, {node.original!r})")

    def _emit_load_statement(self, node):
        self._module = node.module.value
        for binding in node.bindings:
            self._dispatch(binding)


require_handlers(Emitter, "_emit_")


class Program:
    """
    An executable module file: a code object plus the tables that map its
    generated lines and bytecode back to source Locations.
    """

    def __init__(self, file_location, filename, source, code, globals_, line_locations, spans):
        self.file_location = file_location
        self.filename = filename
        self.source = source
        self.code = code
        self.globals = globals_
        self._line_locations = line_locations
        self._spans = spans

    @classmethod
    def compile_file(cls, file, module):
        """
        Resolve and compile a parsed file against `module`'s predeclared names.

        Raises:
            SyntaxErrors: if the file has parse errors or fails resolution.
        """
        if not file.ok:
            raise SyntaxErrors(file.errors)
        resolver = Resolver(module)
        resolver.resolve(file)

        emitter = Emitter()
        emitter.emit_file(file)
        source = "\n".join(emitter.lines) + "\n"
        filename = f"<module file {file.location}>"
        try:
            code = compile(source, filename, "exec")
        except SyntaxError as e:
            location = None
            if e.lineno is not None and 0 < e.lineno <= len(emitter.line_locations):
                location = emitter.line_locations[e.lineno - 1]
            if location is None:
                location = Location(file=file.location, line=1, column=1)
            raise SyntaxErrors([SyntaxIssue(location=location, message=e.msg)]) from e
        return cls(file.location, filename, source, code, resolver.globals,
                   emitter.line_locations, emitter.spans)

    def location_for_line(self, lineno):
        if lineno is None or not 0 < lineno <= len(self._line_locations):
            return None
        return self._line_locations[lineno - 1]

    def location_for(self, code, lineno, lasti):
        """The Location of the innermost expression executing at `lasti` in `code`."""
        fallback = self.location_for_line(lineno)
        if fallback is None or lasti is None or lasti < 0 or not hasattr(code, "co_positions"):
            return fallback
        position = next(itertools.islice(code.co_positions(), lasti // 2, None), None)
        if position is None:
            return fallback
        start_line, end_line, start_col, end_col = position
        if start_line != lineno or end_line != lineno or start_col is None or end_col is None:
            return fallback
        best = None
        for start, end, location in self._spans[lineno - 1]:
            if start <= start_col and end_col <= end and (best is None or end - start < best[1] - best[0]):
                best = (start, end, location)
        return best[2] if best is not None else fallback

    def location_for_frame(self, frame):
        return self.location_for(frame.f_code, frame.f_lineno, frame.f_lasti)

    def location_for_traceback(self, tb):
        """The Location of the innermost frame of this program in a traceback."""
        found = None
        while tb is not None:
            if tb.tb_frame.f_code.co_filename == self.filename:
                found = tb
            tb = tb.tb_next
        if found is None:
            return None
        return self.location_for(found.tb_frame.f_code, found.tb_lineno, found.tb_lasti)

    def __repr__(self):
        return f"<Program {self.file_location} globals={self.globals}>"
