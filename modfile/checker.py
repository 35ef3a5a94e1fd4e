"""
Syntax restriction checks for module files.

`DotFileSyntaxChecker` enforces the structural rules shared by restricted
configuration files (no `if`, `for`, `def`, `lambda`, `*args`, and
optionally no `load`). `ModuleFileSyntaxChecker` adds the rules for the
`module_import` directive and collects its well-formed invocations.
"""
from typing import List

from pydantic import BaseModel, ConfigDict

from modfile.errors import Location, SyntaxErrors, SyntaxIssue
from modfile.syntax import (
    CallExpression,
    Identifier,
    PositionalArgument,
    StarArgument,
    StarStarArgument,
    StringLiteral,
)
from modfile.visitor import SyntaxTreeVisitor

MODULE_IMPORT = "module_import"
MODULE_FILES = "MODULE.bazel files"


class ModuleImportStatement(BaseModel):
    """A top-level `module_import("label")` call: the label and where the call starts."""
    model_config = ConfigDict(frozen=True)

    import_label: str
    location: Location


class DotFileSyntaxChecker(SyntaxTreeVisitor):
    """
    Rejects control flow and function definitions in a restricted file.

    Every error is collected before `check` raises, so a single pass reports
    all problems in the file.

    Args:
        where: Plural description of the files being checked, used in messages
            (e.g. "MODULE.bazel files").
        can_load: Whether `load` statements are permitted.
    """

    def __init__(self, where, can_load):
        self.where = where
        self.can_load = can_load
        self._errors = []

    def check(self, file):
        """Visit the whole file; raise SyntaxErrors if anything was reported."""
        self._errors = []
        self.visit_file(file)
        if self._errors:
            raise SyntaxErrors(self._errors)

    def error(self, location, message):
        self._errors.append(SyntaxIssue(location=location, message=message))

    def visit_load_statement(self, node):
        if not self.can_load:
            self.error(node.location, f"`load` statements may not be used in {self.where}")
        super().visit_load_statement(node)

    def visit_call_expression(self, node):
        for argument in node.arguments:
            if isinstance(argument, StarArgument):
                self.error(argument.location, f"*args arguments are not allowed in {self.where}")
            elif isinstance(argument, StarStarArgument):
                self.error(argument.location, f"**kwargs arguments are not allowed in {self.where}")
        super().visit_call_expression(node)

    def visit_def_statement(self, node):
        self.error(node.location, f"functions may not be defined in {self.where}")
        super().visit_def_statement(node)

    def visit_lambda_expression(self, node):
        self.error(node.location, f"functions may not be defined in {self.where}")
        super().visit_lambda_expression(node)

    def visit_for_statement(self, node):
        self.error(
            node.location,
            f"`for` statements are not allowed in {self.where}. You may inline the loop, move it "
            "to a function definition (in a .bzl file), or as a last resort use a list comprehension.",
        )
        super().visit_for_statement(node)

    def visit_if_statement(self, node):
        if node.is_elif:
            # Reported once, at the `if` that owns this branch.
            super().visit_if_statement(node)
            return
        self.error(
            node.location,
            f"`if` statements are not allowed in {self.where}. You may move conditional logic to a "
            "function definition (in a .bzl file), or for simple cases use an if expression.",
        )
        super().visit_if_statement(node)


class ModuleFileSyntaxChecker(DotFileSyntaxChecker):
    """Structural checks plus recognition of top-level `module_import` directives."""

    def __init__(self, where=MODULE_FILES):
        super().__init__(where, can_load=False)
        self.import_statements = []

    def check(self, file):
        self.import_statements = []
        super().check(file)

    def visit_expression_statement(self, node):
        # Statements nested in blocks are already errors, so this is effectively top-level only.
        call = node.expression
        if (isinstance(call, CallExpression)
                and isinstance(call.function, Identifier)
                and call.function.name == MODULE_IMPORT):
            arguments = call.arguments
            if (len(arguments) == 1
                    and isinstance(arguments[0], PositionalArgument)
                    and isinstance(arguments[0].value, StringLiteral)):
                self.import_statements.append(ModuleImportStatement(
                    import_label=arguments[0].value.value,
                    location=call.location,
                ))
                return
            self.error(
                node.location,
                f"the `{MODULE_IMPORT}` directive MUST be called with exactly one positional "
                "argument that is a string literal",
            )
            return
        super().visit_expression_statement(node)

    def visit_identifier(self, node):
        if node.name == MODULE_IMPORT:
            self.error(
                node.location,
                f"the `{MODULE_IMPORT}` directive MUST be called directly at the top-level",
            )
        super().visit_identifier(node)


def check_module_file_syntax(file, where=MODULE_FILES) -> List[ModuleImportStatement]:
    """
    Check a parsed module file against the module file rules.

    Returns:
        The file's `module_import` statements, in source order.

    Raises:
        SyntaxErrors: with every violation found; no statements are returned.
    """
    checker = ModuleFileSyntaxChecker(where)
    checker.check(file)
    return list(checker.import_statements)
