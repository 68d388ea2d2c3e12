"""Python language configuration."""

from .base import LanguageConfig

PYTHON_HIGHLIGHTS = r"""
(comment) @comment
(string) @string
[(integer) (float)] @number
[(true) (false) (none)] @constant.builtin

((identifier) @constant
 (#match? @constant "^[A-Z][A-Z0-9_]*$"))

((identifier) @variable.builtin
 (#any-of? @variable.builtin "self" "cls"))

(function_definition name: (identifier) @function)
(class_definition name: (identifier) @type)
(call function: (identifier) @function.call)
(call function: (attribute attribute: (identifier) @function.method))
(decorator) @attribute

[
  "def" "class" "return" "if" "elif" "else" "for" "while" "in"
  "import" "from" "as" "with" "try" "except" "finally" "raise"
  "pass" "lambda" "yield" "not" "and" "or" "is"
] @keyword
"""


class PythonConfig(LanguageConfig):
    """Configuration for Python source."""

    def get_language_name(self) -> str:
        return "python"

    def get_highlight_query(self) -> str:
        return PYTHON_HIGHLIGHTS
