"""Expression compiler for conditional and arithmetic transformation values.

Turns free-text conditions ("w < 200 and h != 0") and fluent expression
chains into the canonical underscore-delimited strings the CDN expects.
Expressions are flat token sequences: there is no operator precedence and
tokens are emitted exactly in the order they were added.
"""

import re
from typing import Any

OPERATORS = {
    "=": "eq",
    "==": "eq",
    "!=": "ne",
    "<": "lt",
    ">": "gt",
    "<=": "lte",
    ">=": "gte",
    "&&": "and",
    "||": "or",
    "*": "mul",
    "/": "div",
    "+": "add",
    "-": "sub",
    "^": "pow",
}

PREDEFINED_VARS = {
    "width": "w",
    "height": "h",
    "initial_width": "iw",
    "initialWidth": "iw",
    "initial_height": "ih",
    "initialHeight": "ih",
    "aspect_ratio": "ar",
    "aspectRatio": "ar",
    "initial_aspect_ratio": "iar",
    "initialAspectRatio": "iar",
    "trimmed_aspect_ratio": "tar",
    "trimmedAspectRatio": "tar",
    "page_count": "pc",
    "pageCount": "pc",
    "face_count": "fc",
    "faceCount": "fc",
    "illustration_score": "ils",
    "illustrationScore": "ils",
    "current_page": "cp",
    "currentPage": "cp",
    "tags": "tags",
    "page_x": "px",
    "pageX": "px",
    "page_y": "py",
    "pageY": "py",
    "duration": "du",
    "initial_duration": "idu",
    "initialDuration": "idu",
    "context": "ctx",
}

USER_VARIABLE_RE = re.compile(r"\$_*[^_]+")
QUOTED_STRING_RE = re.compile(r"^!.+!$")

# Longest spellings first so "<=" wins over "<" and "==" over "=".
_OPERATOR_ALTERNATION = "|".join(
    re.escape(op) for op in sorted(OPERATORS, key=len, reverse=True)
)
_VARIABLE_ALTERNATION = "|".join(sorted(PREDEFINED_VARS, key=len, reverse=True))
_REPLACE_RE = re.compile(
    rf"(?:{_OPERATOR_ALTERNATION})(?=_)"
    rf"|(?<![$:a-zA-Z0-9])(?:{_VARIABLE_ALTERNATION})(?![a-zA-Z0-9])"
)


def _translate(match: re.Match) -> str:
    token = match.group(0)
    return OPERATORS.get(token, PREDEFINED_VARS.get(token, token))


def normalize(expression: Any) -> Any:
    """Normalize an expression into its canonical URL form.

    Spaces become underscores, operator symbols become their short tokens
    and predefined variable names become their codes. User variables
    ($name) and quoted literals (!text!) are left untouched.

    Args:
        expression: Expression text, number or Expression object

    Returns:
        Normalized string, or the input unchanged when it is None or empty
    """
    if expression is None or expression == "":
        return expression

    text = str(expression)
    if QUOTED_STRING_RE.match(text):
        return text

    text = re.sub(r"[ _]+", "_", text)

    parts = []
    last_end = 0
    for match in USER_VARIABLE_RE.finditer(text):
        parts.append(_REPLACE_RE.sub(_translate, text[last_end:match.start()]))
        parts.append(match.group(0))
        last_end = match.end()
    parts.append(_REPLACE_RE.sub(_translate, text[last_end:]))

    return "".join(parts)


def value_contains_variable(value: Any) -> bool:
    """Check whether a value references a user variable ($name)."""
    return value is not None and USER_VARIABLE_RE.search(str(value)) is not None


class Expression:
    """Immutable accumulator of expression tokens.

    Every method returns a new Expression, so partial chains can be shared
    safely:

        Expression.initial_width().div(2).add(1)  ->  "iw_div_2_add_1"
    """

    def __init__(self, *tokens: Any):
        self._tokens = tuple(str(token) for token in tokens if token is not None)

    def _extend(self, *tokens: Any) -> "Expression":
        return Expression(*self._tokens, *tokens)

    def _operator(self, operator: str, value: Any = None) -> "Expression":
        if value is None:
            return self._extend(operator)
        return self._extend(operator, value)

    @property
    def tokens(self) -> tuple[str, ...]:
        return self._tokens

    def serialize(self) -> str:
        """Serialize the accumulated tokens.

        Returns:
            Normalized, underscore-joined expression string
        """
        return normalize("_".join(self._tokens)) or ""

    def __str__(self) -> str:
        return self.serialize()

    def __repr__(self) -> str:
        return f"Expression({self.serialize()!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Expression):
            return self.serialize() == other.serialize()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.serialize())

    def value(self, value: Any) -> "Expression":
        return self._extend(value)

    def eq(self, value: Any = None) -> "Expression":
        return self._operator("eq", value)

    def ne(self, value: Any = None) -> "Expression":
        return self._operator("ne", value)

    def lt(self, value: Any = None) -> "Expression":
        return self._operator("lt", value)

    def gt(self, value: Any = None) -> "Expression":
        return self._operator("gt", value)

    def lte(self, value: Any = None) -> "Expression":
        return self._operator("lte", value)

    def gte(self, value: Any = None) -> "Expression":
        return self._operator("gte", value)

    def in_(self, value: Any = None) -> "Expression":
        return self._operator("in", value)

    def nin(self, value: Any = None) -> "Expression":
        return self._operator("nin", value)

    def and_(self, value: Any = None) -> "Expression":
        return self._operator("and", value)

    def or_(self, value: Any = None) -> "Expression":
        return self._operator("or", value)

    def add(self, value: Any = None) -> "Expression":
        return self._operator("add", value)

    def sub(self, value: Any = None) -> "Expression":
        return self._operator("sub", value)

    def mul(self, value: Any = None) -> "Expression":
        return self._operator("mul", value)

    def div(self, value: Any = None) -> "Expression":
        return self._operator("div", value)

    def pow(self, value: Any = None) -> "Expression":
        return self._operator("pow", value)

    @classmethod
    def variable(cls, name: str) -> "Expression":
        """Start an expression from a user variable."""
        return cls(name if name.startswith("$") else f"${name}")

    @classmethod
    def width(cls) -> "Expression":
        return cls("w")

    @classmethod
    def height(cls) -> "Expression":
        return cls("h")

    @classmethod
    def initial_width(cls) -> "Expression":
        return cls("iw")

    @classmethod
    def initial_height(cls) -> "Expression":
        return cls("ih")

    @classmethod
    def aspect_ratio(cls) -> "Expression":
        return cls("ar")

    @classmethod
    def initial_aspect_ratio(cls) -> "Expression":
        return cls("iar")

    @classmethod
    def page_count(cls) -> "Expression":
        return cls("pc")

    @classmethod
    def face_count(cls) -> "Expression":
        return cls("fc")

    @classmethod
    def illustration_score(cls) -> "Expression":
        return cls("ils")

    @classmethod
    def current_page_index(cls) -> "Expression":
        return cls("cp")

    @classmethod
    def tags(cls) -> "Expression":
        return cls("tags")

    @classmethod
    def x_offset(cls) -> "Expression":
        return cls("px")

    @classmethod
    def y_offset(cls) -> "Expression":
        return cls("py")

    @classmethod
    def duration(cls) -> "Expression":
        return cls("du")

    @classmethod
    def initial_duration(cls) -> "Expression":
        return cls("idu")


class Condition:
    """Builder for `if` conditions.

    Accepts free text, which is normalized immediately, or a fluent chain of
    predicates joined by `and_()` / `or_()` in call order.
    """

    def __init__(self, condition: str | None = None):
        self._predicates: tuple[str, ...] = ()
        if condition:
            self._predicates = (normalize(condition),)

    def _extend(self, predicate: str) -> "Condition":
        condition = Condition()
        condition._predicates = self._predicates + (predicate,)
        return condition

    def _predicate(self, code: str, operator: str, value: Any) -> "Condition":
        operator = OPERATORS.get(operator, operator)
        return self._extend(f"{code}_{operator}_{value}")

    def serialize(self) -> str:
        return "_".join(self._predicates)

    def __str__(self) -> str:
        return self.serialize()

    def __repr__(self) -> str:
        return f"Condition({self.serialize()!r})"

    def and_(self) -> "Condition":
        return self._extend("and")

    def or_(self) -> "Condition":
        return self._extend("or")

    def width(self, operator: str, value: Any) -> "Condition":
        return self._predicate("w", operator, value)

    def height(self, operator: str, value: Any) -> "Condition":
        return self._predicate("h", operator, value)

    def initial_width(self, operator: str, value: Any) -> "Condition":
        return self._predicate("iw", operator, value)

    def initial_height(self, operator: str, value: Any) -> "Condition":
        return self._predicate("ih", operator, value)

    def aspect_ratio(self, operator: str, value: Any) -> "Condition":
        return self._predicate("ar", operator, value)

    def face_count(self, operator: str, value: Any) -> "Condition":
        return self._predicate("fc", operator, value)

    def page_count(self, operator: str, value: Any) -> "Condition":
        return self._predicate("pc", operator, value)
