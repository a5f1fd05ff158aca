"""Transformation serializer.

A Transformation is a persistent value: every builder call returns a new
Transformation and the receiver is never modified, so a base
transformation can be shared between any number of URLs. Parameters are
stored under their long names and rendered to short keys only when
`generate()` is called, which is also the only place structural errors
(missing layer fields, invalid keyframe intervals, ...) are raised.

Each chained segment renders as:

    if_<condition>,<variables>,<sorted key_value pairs>,<raw transformation>

and segments are joined with "/".
"""

import re
from decimal import ROUND_HALF_UP, Decimal
from fractions import Fraction
from typing import Any

from .encoding import base64url_encode
from .errors import UsageError
from .expression import Condition, Expression, normalize, value_contains_variable
from .layers import FetchLayer, Layer

VARIABLE_NAME_RE = re.compile(r"^\$[a-zA-Z][a-zA-Z0-9]*$")
RANGE_VALUE_RE = re.compile(r"^(?P<value>(\d+\.)?\d+)(?P<modifier>[%pP])?$")
RANGE_RE = re.compile(r"^(\d+\.)?\d+[%pP]?\.\.(\d+\.)?\d+[%pP]?$")
FLOAT_RE = re.compile(r"^(\d+)\.(\d+)?$")

# Long name -> short key for values that go through expression normalization.
EXPRESSION_PARAMS = {
    "angle": "a",
    "aspect_ratio": "ar",
    "dpr": "dpr",
    "duration": "du",
    "effect": "e",
    "end_offset": "eo",
    "height": "h",
    "opacity": "o",
    "quality": "q",
    "start_offset": "so",
    "width": "w",
    "x": "x",
    "y": "y",
    "zoom": "z",
}

# Long name -> short key for values rendered as given.
SIMPLE_PARAMS = {
    "audio_codec": "ac",
    "audio_frequency": "af",
    "background": "b",
    "bit_rate": "br",
    "border": "bo",
    "color": "co",
    "color_space": "cs",
    "crop": "c",
    "default_image": "d",
    "delay": "dl",
    "density": "dn",
    "fetch_format": "f",
    "flags": "fl",
    "fps": "fps",
    "gravity": "g",
    "keyframe_interval": "ki",
    "overlay": "l",
    "prefix": "p",
    "page": "pg",
    "radius": "r",
    "streaming_profile": "sp",
    "transformation": "t",
    "underlay": "u",
    "video_codec": "vc",
    "video_sampling": "vs",
}

# Keys consumed by the serializer itself rather than emitted as key_value.
_SPECIAL_KEYS = {
    "if",
    "size",
    "offset",
    "variables",
    "raw_transformation",
    "responsive_width",
    "custom_function",
    "custom_pre_function",
}


def format_value(value: Any) -> str:
    """Render a parameter value as URL text.

    Floats use an invariant decimal point with one or two decimals,
    booleans are lowercase and expressions are serialized.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        text = str(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)).rstrip("0")
        return text + "0" if text.endswith(".") else text
    return str(value)


def is_fraction(value: Any) -> bool:
    """Check whether a width/height is a relative value below 1."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return 0 <= value < 1 and isinstance(value, float)
    text = str(value)
    return FLOAT_RE.match(text) is not None and float(text) < 1


def norm_range_value(value: Any) -> str | None:
    """Normalize a range value, turning a percent modifier into "p".

    Args:
        value: Number or string such as 2.5, "35%" or "35p"

    Returns:
        Normalized value, or None when the value is not a range value
    """
    if value is None:
        return None
    match = RANGE_VALUE_RE.match(format_value(value))
    if match is None:
        return None
    modifier = "p" if match.group("modifier") is not None else ""
    return match.group("value") + modifier


def norm_auto_range_value(value: Any) -> str | None:
    """Like norm_range_value, but lets "auto" through."""
    if value == "auto":
        return value
    return norm_range_value(value)


def split_range(value: Any) -> list[Any] | None:
    """Split "a..b" strings or two-item sequences into [start, end]."""
    if isinstance(value, (list, tuple)) and len(value) >= 2:
        return [value[0], value[-1]]
    if isinstance(value, str) and RANGE_RE.match(value):
        return value.split("..", 1)
    return None


def _process_video_codec(value: Any) -> Any:
    if not isinstance(value, dict):
        return value
    codec = value["codec"]
    if "profile" in value:
        codec = f"{codec}:{value['profile']}"
        if "level" in value:
            codec = f"{codec}:{value['level']}"
    return codec


def _process_keyframe_interval(value: Any) -> str | None:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise UsageError("Keyframe interval should be a number or a string")
    if value <= 0:
        raise UsageError("Keyframe interval should be greater than zero")
    return format_value(float(value))


def _process_radius(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        if not 1 <= len(value) <= 4:
            raise UsageError("Radius should have between 1 and 4 values")
        return ":".join(normalize(format_value(v)) for v in value)
    return format_value(value)


def _process_custom_function(value: Any) -> str | None:
    if not isinstance(value, dict):
        return value
    function_type = value.get("function_type")
    source = value.get("source")
    if function_type == "remote":
        source = base64url_encode(source)
    return f"{function_type}:{source}"


def _process_layer(value: Any, parameter: str) -> str | None:
    if isinstance(value, str) and value.startswith("fetch:"):
        value = FetchLayer(url=value[len("fetch:"):])
    if isinstance(value, Layer):
        return value.serialize(parameter)
    return value


def _process_color(value: Any) -> Any:
    if isinstance(value, str) and value.startswith("#"):
        return "rgb:" + value[1:]
    return value


def _process_border(value: Any) -> Any:
    if isinstance(value, tuple):
        width, color = value
        return f"{width}px_solid_{_process_color(color)}"
    return value


def _join(value: Any, separator: str) -> Any:
    if isinstance(value, (list, tuple)):
        return separator.join(format_value(v) for v in value)
    return value


def _process_if(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (Condition, Expression)):
        return value.serialize()
    return normalize(value)


def _html_sizes(params: dict[str, Any]) -> tuple[Any, Any]:
    """Work out which width/height may be used as HTML attributes."""
    width = params.get("width")
    height = params.get("height")
    size = params.get("size")
    if size:
        width, height = str(size).split("x")

    has_layer = params.get("overlay") is not None or params.get("underlay") is not None
    no_html_sizes = (
        has_layer
        or params.get("angle") not in (None, "", [], ())
        or params.get("crop") in ("fit", "limit")
        or bool(params.get("responsive_width"))
    )

    html_width = width
    if width is not None and (
        str(width).startswith("auto")
        or is_fraction(width)
        or value_contains_variable(width)
        or no_html_sizes
    ):
        html_width = None

    html_height = height
    if height is not None and (
        is_fraction(height) or value_contains_variable(height) or no_html_sizes
    ):
        html_height = None

    return html_width, html_height


def _render_segment(params: dict[str, Any]) -> str:
    params = dict(params)

    size = params.pop("size", None)
    if size:
        params["width"], params["height"] = str(size).split("x")

    offset = split_range(params.pop("offset", None))
    if offset:
        params["start_offset"], params["end_offset"] = offset

    rendered: dict[str, Any] = {}
    variables: list[str] = []

    for name, value in params.items():
        if name in _SPECIAL_KEYS:
            continue
        if name.startswith("$"):
            variables.append(f"{name}_{normalize(format_value(value))}")
            continue

        if name == "angle":
            value = _join(value, ".")
        elif name == "effect":
            value = _join(value, ":")
        elif name == "aspect_ratio" and isinstance(value, Fraction):
            value = f"{value.numerator}:{value.denominator}"
        elif name == "duration" or name == "end_offset":
            value = norm_range_value(value)
        elif name == "start_offset":
            value = norm_auto_range_value(value)
        elif name in ("background", "color"):
            value = _process_color(value)
        elif name == "border":
            value = _process_border(value)
        elif name in ("flags", "transformation"):
            value = _join(value, ".")
        elif name == "fps":
            value = _join(value, "-")
        elif name == "video_codec":
            value = _process_video_codec(value)
        elif name == "keyframe_interval":
            value = _process_keyframe_interval(value)
        elif name == "radius":
            value = _process_radius(value)
        elif name in ("overlay", "underlay"):
            value = _process_layer(value, name)

        if value is None or value == "":
            continue

        if name in EXPRESSION_PARAMS:
            rendered[EXPRESSION_PARAMS[name]] = normalize(format_value(value))
        elif name in SIMPLE_PARAMS:
            rendered[SIMPLE_PARAMS[name]] = format_value(value)
        else:
            rendered[name] = format_value(value)

    custom_function = _process_custom_function(params.get("custom_function"))
    custom_pre_function = _process_custom_function(params.get("custom_pre_function"))
    if custom_function:
        rendered["fn"] = custom_function
    elif custom_pre_function:
        rendered["fn"] = f"pre:{custom_pre_function}"

    variables.sort()
    for name, value in params.get("variables") or ():
        variables.append(f"{name}_{normalize(format_value(value))}")

    components = [f"{key}_{rendered[key]}" for key in sorted(rendered)]
    if variables:
        components.insert(0, ",".join(variables))

    condition = _process_if(params.get("if"))
    if condition:
        components.insert(0, f"if_{condition}")

    raw = params.get("raw_transformation")
    if raw is not None and raw != "":
        components.append(str(raw))

    return ",".join(components)


class Transformation:
    """Persistent builder for chained media transformations.

        base = Transformation().crop("fill").width(100)
        base.height(50).generate()   # "c_fill,h_50,w_100"
        base.generate()              # "c_fill,w_100"

    Keyword arguments seed the current segment using long parameter names.
    """

    def __init__(self, **params: Any):
        self._segments: tuple[dict[str, Any], ...] = ()
        self._params: dict[str, Any] = {k: v for k, v in params.items() if v is not None}

    @classmethod
    def _create(cls, segments: tuple[dict[str, Any], ...], params: dict[str, Any]) -> "Transformation":
        transformation = cls.__new__(cls)
        transformation._segments = segments
        transformation._params = params
        return transformation

    @classmethod
    def from_segments(cls, segments: list[dict[str, Any]]) -> "Transformation":
        """Build a chained transformation from a list of parameter mappings."""
        *closed, current = segments or [{}]
        return cls._create(tuple(dict(s) for s in closed), dict(current))

    @property
    def params(self) -> dict[str, Any]:
        """Copy of the current (unchained) segment's parameters."""
        return dict(self._params)

    @property
    def segments(self) -> list[dict[str, Any]]:
        """Copies of every segment, chained ones first."""
        return [dict(s) for s in self._segments] + [dict(self._params)]

    def param(self, name: str, value: Any) -> "Transformation":
        """Set a parameter on the current segment.

        Args:
            name: Long parameter name, a $variable, or a raw short key
            value: Parameter value; None removes the parameter

        Returns:
            New Transformation with the parameter applied
        """
        params = dict(self._params)
        if value is None:
            params.pop(name, None)
        else:
            params[name] = value
        return self._create(self._segments, params)

    def chain(self) -> "Transformation":
        """Close the current segment and start a new one."""
        return self._create(self._segments + (dict(self._params),), {})

    def if_(self, condition: "str | Condition | Expression") -> "Transformation":
        """Apply the current segment only when the condition holds."""
        return self.param("if", condition)

    def if_else(self) -> "Transformation":
        return self.chain().param("if", "else")

    def end_if(self) -> "Transformation":
        """Close a conditional block.

        Any segment in the block that carries both a condition and other
        parameters is split so the condition occupies its own segment, then
        an `if_end` segment is appended.
        """
        segments = list(self.chain()._segments)
        for i in range(len(segments) - 1, -1, -1):
            segment = segments[i]
            if "if" not in segment:
                continue
            condition = segment["if"]
            if condition == "end":
                break
            if len(segment) > 1:
                rest = {k: v for k, v in segment.items() if k != "if"}
                segments[i:i + 1] = [{"if": condition}, rest]
            if condition != "else":
                break
        segments.append({"if": "end"})
        return self._create(tuple(segments), {})

    def variable(self, name: str, value: Any) -> "Transformation":
        """Define a user variable.

        Args:
            name: Variable name including the leading $
            value: Value or expression; lists become !a:b:c! literals

        Raises:
            UsageError: If the name is not a valid variable name
        """
        if not VARIABLE_NAME_RE.match(name):
            raise UsageError(f"Invalid variable name: {name!r}")
        if isinstance(value, (list, tuple)):
            value = "!" + ":".join(format_value(v) for v in value) + "!"
        return self.param(name, value)

    def variables(self, *pairs: tuple[str, Any]) -> "Transformation":
        """Define variables rendered in the given order after sorted ones."""
        for name, _ in pairs:
            if not VARIABLE_NAME_RE.match(name):
                raise UsageError(f"Invalid variable name: {name!r}")
        return self.param("variables", tuple(pairs))

    def width(self, value: Any) -> "Transformation":
        return self.param("width", value)

    def height(self, value: Any) -> "Transformation":
        return self.param("height", value)

    def size(self, value: str) -> "Transformation":
        """Set width and height from a "WIDTHxHEIGHT" string."""
        return self.param("size", value)

    def crop(self, value: str) -> "Transformation":
        return self.param("crop", value)

    def gravity(self, value: str) -> "Transformation":
        return self.param("gravity", value)

    def angle(self, *values: Any) -> "Transformation":
        return self.param("angle", values[0] if len(values) == 1 else list(values))

    def effect(self, name: str, *args: Any) -> "Transformation":
        """Apply an effect, e.g. effect("brightness", 50) -> e_brightness:50."""
        return self.param("effect", [name, *args] if args else name)

    def background(self, value: str) -> "Transformation":
        return self.param("background", value)

    def color(self, value: str) -> "Transformation":
        return self.param("color", value)

    def border(self, width: Any, color: str | None = None) -> "Transformation":
        """Set a border; with a color this renders as {width}px_solid_{color}."""
        return self.param("border", (width, color) if color is not None else width)

    def radius(self, *values: Any) -> "Transformation":
        return self.param("radius", values[0] if len(values) == 1 else list(values))

    def opacity(self, value: Any) -> "Transformation":
        return self.param("opacity", value)

    def quality(self, value: Any) -> "Transformation":
        return self.param("quality", value)

    def dpr(self, value: Any) -> "Transformation":
        return self.param("dpr", value)

    def fetch_format(self, value: str) -> "Transformation":
        return self.param("fetch_format", value)

    def flags(self, *values: str) -> "Transformation":
        return self.param("flags", list(values))

    def named(self, *names: str) -> "Transformation":
        """Apply one or more named transformations (t_a.b)."""
        return self.param("transformation", list(names))

    def overlay(self, layer: "Layer | str") -> "Transformation":
        return self.param("overlay", layer)

    def underlay(self, layer: "Layer | str") -> "Transformation":
        return self.param("underlay", layer)

    def x(self, value: Any) -> "Transformation":
        return self.param("x", value)

    def y(self, value: Any) -> "Transformation":
        return self.param("y", value)

    def zoom(self, value: Any) -> "Transformation":
        return self.param("zoom", value)

    def aspect_ratio(self, value: Any) -> "Transformation":
        return self.param("aspect_ratio", value)

    def page(self, value: Any) -> "Transformation":
        return self.param("page", value)

    def density(self, value: Any) -> "Transformation":
        return self.param("density", value)

    def default_image(self, value: str) -> "Transformation":
        return self.param("default_image", value)

    def delay(self, value: Any) -> "Transformation":
        return self.param("delay", value)

    def prefix(self, value: str) -> "Transformation":
        return self.param("prefix", value)

    def color_space(self, value: str) -> "Transformation":
        return self.param("color_space", value)

    def custom_function(self, function_type: str, source: str) -> "Transformation":
        """Attach a custom function; remote sources are base64 encoded."""
        return self.param("custom_function", {"function_type": function_type, "source": source})

    def custom_pre_function(self, function_type: str, source: str) -> "Transformation":
        return self.param("custom_pre_function", {"function_type": function_type, "source": source})

    def raw_transformation(self, value: str) -> "Transformation":
        """Append a raw, already serialized component to the segment."""
        return self.param("raw_transformation", value)

    def responsive_width(self, enabled: bool = True) -> "Transformation":
        return self.param("responsive_width", enabled)

    def start_offset(self, value: Any) -> "Transformation":
        return self.param("start_offset", value)

    def end_offset(self, value: Any) -> "Transformation":
        return self.param("end_offset", value)

    def offset(self, value: "str | list | tuple") -> "Transformation":
        """Set start and end offsets from "a..b" or a (start, end) pair."""
        return self.param("offset", value)

    def duration(self, value: Any) -> "Transformation":
        return self.param("duration", value)

    def video_codec(self, codec: str, profile: str | None = None, level: str | None = None) -> "Transformation":
        value: dict[str, str] = {"codec": codec}
        if profile is not None:
            value["profile"] = profile
            if level is not None:
                value["level"] = level
        return self.param("video_codec", value)

    def audio_codec(self, value: str) -> "Transformation":
        return self.param("audio_codec", value)

    def audio_frequency(self, value: Any) -> "Transformation":
        return self.param("audio_frequency", value)

    def bit_rate(self, value: Any) -> "Transformation":
        return self.param("bit_rate", value)

    def video_sampling(self, value: Any) -> "Transformation":
        return self.param("video_sampling", value)

    def fps(self, *values: Any) -> "Transformation":
        return self.param("fps", values[0] if len(values) == 1 else list(values))

    def keyframe_interval(self, value: Any) -> "Transformation":
        return self.param("keyframe_interval", value)

    def streaming_profile(self, value: str) -> "Transformation":
        return self.param("streaming_profile", value)

    @property
    def html_width(self) -> Any:
        """Width usable as an HTML attribute, or None."""
        return _html_sizes(self._params)[0]

    @property
    def html_height(self) -> Any:
        """Height usable as an HTML attribute, or None."""
        return _html_sizes(self._params)[1]

    @property
    def is_responsive(self) -> bool:
        return bool(self._params.get("responsive_width")) or str(
            self._params.get("width", "")
        ).startswith("auto")

    @property
    def is_hidpi(self) -> bool:
        return self._params.get("dpr") == "auto"

    def generate(self, responsive_default: "Transformation | None" = None) -> str:
        """Serialize every segment.

        Args:
            responsive_default: Transformation appended after segments that
                request responsive width; defaults to c_limit,w_auto

        Returns:
            Slash-joined transformation string (empty segments skipped)

        Raises:
            UsageError: If a layer or parameter is in an invalid state
        """
        responsive = responsive_default or DEFAULT_RESPONSIVE_WIDTH_TRANSFORMATION
        parts = []
        for segment in self._segments + (self._params,):
            parts.append(_render_segment(segment))
            if segment.get("responsive_width"):
                parts.append(responsive.generate())
        return "/".join(part for part in parts if part)

    def __str__(self) -> str:
        return self.generate()

    def __repr__(self) -> str:
        return f"Transformation({self.segments!r})"

    def __bool__(self) -> bool:
        return any(self._segments) or bool(self._params)


DEFAULT_RESPONSIVE_WIDTH_TRANSFORMATION = Transformation(crop="limit", width="auto")


def build_eager(
    items: "list | tuple | Transformation | None",
    responsive_default: "Transformation | None" = None,
) -> str | None:
    """Serialize eager transformations for upload requests.

    Args:
        items: Transformations, (transformation, format) pairs, or a single
            transformation
        responsive_default: Segment used for responsive width; defaults to
            c_limit,w_auto

    Returns:
        "|"-joined list of "transformation[/format]", or None when empty
    """
    if items is None:
        return None
    if isinstance(items, (Transformation, str)):
        items = [items]

    eager = []
    for item in items:
        fmt = None
        if isinstance(item, tuple):
            item, fmt = item
        text = item.generate(responsive_default) if isinstance(item, Transformation) else str(item)
        eager.append("/".join(part for part in (text, fmt) if part))
    return "|".join(eager) or None
