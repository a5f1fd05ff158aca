"""Overlay and underlay layer parameters.

Layers are immutable descriptions rendered into the `l_` / `u_`
transformation parameters. Required fields are checked only when a layer
is serialized, so a partially configured layer can be passed around freely.
"""

import re
from dataclasses import dataclass

from .encoding import base64_encode_url, smart_escape
from .errors import UsageError

TEXT_VARIABLE_RE = re.compile(r"(\$\([a-zA-Z]\w+\))")

# (attribute, value that is omitted from the style identifier)
_TEXT_KEYWORDS = [
    ("font_weight", "normal"),
    ("font_style", "normal"),
    ("text_decoration", "none"),
    ("text_align", None),
    ("stroke", "none"),
]


def encode_text(text: str) -> str:
    """Escape overlay text, keeping $(variable) interpolations intact.

    Commas and slashes are escaped twice so the CDN does not read them as
    parameter or path separators.

    Args:
        text: Raw overlay text

    Returns:
        Escaped text
    """
    encoded = []
    for part in TEXT_VARIABLE_RE.split(text):
        if not part:
            continue
        if TEXT_VARIABLE_RE.fullmatch(part):
            encoded.append(part)
        else:
            encoded.append(smart_escape(smart_escape(part, r"[,/]")))
    return "".join(encoded)


@dataclass(frozen=True)
class Layer:
    """An image, video or raw asset placed over or under the base asset.

    Attributes:
        public_id: Public ID of the layered asset
        format: Optional format appended to the public ID
        resource_type: Resource type (omitted from output when "image")
        type: Delivery type (omitted from output when "upload")
    """
    public_id: str | None = None
    format: str | None = None
    resource_type: str = "image"
    type: str = "upload"

    def _prefix(self) -> list[str]:
        components = []
        if self.resource_type and self.resource_type != "image":
            components.append(self.resource_type)
        if self.type and self.type != "upload":
            components.append(self.type)
        return components

    def _formatted_public_id(self) -> str | None:
        if not self.public_id:
            return None
        public_id = self.public_id.replace("/", ":")
        if self.format:
            public_id = f"{public_id}.{self.format}"
        return public_id

    def serialize(self, parameter: str = "overlay") -> str:
        """Render the layer value.

        Args:
            parameter: "overlay" or "underlay", used in error messages

        Returns:
            Colon-delimited layer parameter

        Raises:
            UsageError: If no public ID was supplied
        """
        public_id = self._formatted_public_id()
        if public_id is None:
            raise UsageError(f"Must supply public_id for non-text {parameter}")
        return ":".join(self._prefix() + [public_id])

    def __str__(self) -> str:
        return self.serialize()


@dataclass(frozen=True)
class TextLayer(Layer):
    """A text overlay.

    Attributes:
        text: Text to render; may contain $(variable) interpolations
        font_family: Font family name
        font_size: Font size in points
        font_weight: "normal" or "bold"
        font_style: "normal" or "italic"
        text_decoration: "none", "underline" or "strikethrough"
        text_align: Alignment keyword
        stroke: "none" or "stroke"
        letter_spacing: Spacing between letters
        line_spacing: Spacing between lines
        font_antialiasing: Antialiasing mode
        font_hinting: Hinting mode
        text_style: Named text style replacing the generated identifier
    """
    resource_type: str = "text"
    text: str | None = None
    font_family: str | None = None
    font_size: int | float | None = None
    font_weight: str | None = None
    font_style: str | None = None
    text_decoration: str | None = None
    text_align: str | None = None
    stroke: str | None = None
    letter_spacing: int | float | str | None = None
    line_spacing: int | float | str | None = None
    font_antialiasing: str | None = None
    font_hinting: str | None = None
    text_style: str | None = None

    def style_identifier(self, parameter: str = "overlay") -> str | None:
        """Build the font/style component of a text layer.

        Args:
            parameter: "overlay" or "underlay", used in error messages

        Returns:
            Style identifier, or None when no styling was given

        Raises:
            UsageError: If styling was given without a font family or size
        """
        if self.text_style and not self.text_style.isspace():
            return self.text_style

        keywords = []
        for attr, omitted in _TEXT_KEYWORDS:
            value = getattr(self, attr)
            if value is not None and value != omitted:
                keywords.append(str(value))

        if self.letter_spacing is not None:
            keywords.append(f"letter_spacing_{self.letter_spacing}")
        if self.line_spacing is not None:
            keywords.append(f"line_spacing_{self.line_spacing}")
        if self.font_antialiasing is not None:
            keywords.append(f"antialias_{self.font_antialiasing}")
        if self.font_hinting is not None:
            keywords.append(f"hinting_{self.font_hinting}")

        if self.font_family is None and self.font_size is None and not keywords:
            return None
        if self.font_family is None:
            raise UsageError(f"Must supply font_family for text in {parameter}")
        if self.font_size is None:
            raise UsageError(f"Must supply font_size for text in {parameter}")

        return "_".join([self.font_family, str(self.font_size)] + keywords)

    def serialize(self, parameter: str = "overlay") -> str:
        if not self.public_id and self.text is None:
            raise UsageError(f"Must supply either text or public_id in {parameter}")

        components = self._prefix()
        style = self.style_identifier(parameter)
        if style is not None:
            components.append(style)
        public_id = self._formatted_public_id()
        if public_id is not None:
            components.append(public_id)
        if self.text is not None:
            components.append(encode_text(self.text))
        return ":".join(components)


@dataclass(frozen=True)
class SubtitlesLayer(TextLayer):
    """A subtitles file rendered as a text layer over a video."""
    resource_type: str = "subtitles"


@dataclass(frozen=True)
class FetchLayer(Layer):
    """A remote image or video fetched by URL.

    Attributes:
        url: Remote asset URL
    """
    url: str | None = None

    def serialize(self, parameter: str = "overlay") -> str:
        if not self.url:
            raise UsageError(f"Must supply url for fetch {parameter}")
        components = ["fetch", base64_encode_url(self.url)]
        if self.resource_type == "video":
            components.insert(0, "video")
        return ":".join(components)
