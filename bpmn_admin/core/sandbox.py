"""
Function literal detection for register control keyId values.

Document schemas store keyId either as a register key ID (123, "123") or as
the source of a JavaScript function evaluated by the form renderer
("() => 123", "(data) => data.keyId", "function () { return 5; }").
Import validation only needs to know which of the two it is, so nothing is
ever executed here: the source is matched against the function literal
grammar.
"""

import re
from typing import Any

_IDENTIFIER = r"[A-Za-z_$][\w$]*"
# One level of nesting: "(a = f()) => a", "({ id }) => id"
_PARAMS = r"\((?:[^()]|\([^()]*\))*\)"

_ARROW_FUNCTION = re.compile(
    rf"^(?:async\s+)?(?:{_PARAMS}|{_IDENTIFIER})\s*=>\s*\S[\s\S]*$"
)
_FUNCTION_EXPRESSION = re.compile(
    rf"^(?:async\s+)?function\s*\*?\s*(?:{_IDENTIFIER})?\s*{_PARAMS}\s*\{{[\s\S]*\}}$"
)


class FunctionLiteralDetector:
    """
    Capability-scoped stand-in for "evaluate and check the result is callable".

    Example:
        detector = FunctionLiteralDetector()
        detector.is_function("() => 123")   # True
        detector.is_function("123")         # False
        detector.is_function(123)           # False
    """

    def is_function(self, source: Any) -> bool:
        if not isinstance(source, str):
            return False

        code = source.strip().rstrip(";").strip()
        # Wrapping parentheses: "(() => 1)"
        while code.startswith("(") and code.endswith(")") and self._is_wrapped(code):
            code = code[1:-1].strip()

        if not code:
            return False

        return bool(_ARROW_FUNCTION.match(code) or _FUNCTION_EXPRESSION.match(code))

    @staticmethod
    def _is_wrapped(code: str) -> bool:
        """True if the first "(" closes at the last character"""
        depth = 0
        for position, char in enumerate(code):
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth == 0:
                    return position == len(code) - 1
        return False
