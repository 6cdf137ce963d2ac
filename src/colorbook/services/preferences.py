"""User preferences: generation config, custom styles/palettes and style visibility.

Each of the four documents is persisted independently in the documents table.
"""

from typing import Callable, Optional

import structlog
from pydantic import BaseModel, ValidationError

from colorbook.models.preferences import (
    DEFAULT_STYLE_ID,
    ColorPalette,
    GenerationConfig,
    StyleDefinition,
)

logger = structlog.get_logger(__name__)

CONFIG_KEY = "generation_config"
PALETTES_KEY = "custom_palettes"
STYLES_KEY = "custom_styles"
HIDDEN_STYLES_KEY = "hidden_style_ids"

DEFAULT_STYLE = StyleDefinition(
    id=DEFAULT_STYLE_ID,
    label="Cozy",
    icon="🌸",
    desc="Default Coloring Book Style",
    instruction="""STYLE DEFINITION: "Cozy"

1. CORE AESTHETIC:
Mood: Hygge, Warm, Stress-free, Whimsical.
Target Audience: Adult relaxation & Beginners. "Easy Coloring" is the priority.
Simplicity: High readability. Instant recognition of objects.

2. LINE WORK RULES:
Weight: UNIFORM THICK LINES. The line weight must be heavy (think Sharpie marker style).
Contrast: Stark Black and White only. NO grayscale, NO shading, NO sketching lines.
Closure: All shapes must be closed (no open gaps).

3. CHARACTER & SHAPES:
Geometry: 100% Rounded & Organic. "Squishy" aesthetic.
Prohibitions: NO sharp corners, NO jagged edges. Even tables or boxes should have soft, rounded corners.
Facial Features: Minimalist. Eyes are simple black dots or inverted arcs. Tiny mouths.

4. SCENERY & COMPOSITION:
Full Scene: Create a complete environment (bedroom, garden, bakery), NOT just a floating character.
The "Spacious" Rule: Objects in the background must be LARGE. Avoid tiny details.
Spacing: Leave ample negative space inside objects for coloring.""",
    negative_prompt=(
        "sharp corners, jagged lines, thin lines, sketching, shading, grayscale, "
        "complex texture, noise, chaotic, horror, angry, realistic eyes, open shapes"
    ),
)

DEFAULT_STYLES: tuple[StyleDefinition, ...] = (DEFAULT_STYLE,)

DEFAULT_PALETTES: tuple[ColorPalette, ...] = (
    ColorPalette(id="wc-1", name="Pastel Dream", colors=["#FFB7B2", "#E2F0CB", "#B5EAD7", "#C7CEEA"]),
    ColorPalette(id="wc-2", name="Ocean Mist", colors=["#A0E7E5", "#B4F8C8", "#FBE7C6", "#FFAEBC"]),
    ColorPalette(id="wc-3", name="Sunset Wash", colors=["#FF9AA2", "#FFB7B2", "#FFDAC1", "#E2F0CB"]),
)


def _validate_items(model: type[BaseModel], items, key: str) -> list:
    """Validate a stored list item by item, skipping entries that no longer parse."""
    if not isinstance(items, list):
        if items:
            logger.warning("preferences.document_invalid", key=key)
        return []

    valid = []
    for index, item in enumerate(items):
        try:
            valid.append(model.model_validate(item))
        except ValidationError as e:
            logger.warning("preferences.item_invalid", key=key, index=index, error_message=str(e))
    return valid


class Catalog:
    """Built-in plus custom styles and palettes, with visibility applied."""

    def __init__(
        self,
        custom_styles: Optional[list[StyleDefinition]] = None,
        custom_palettes: Optional[list[ColorPalette]] = None,
        hidden_style_ids: Optional[list[str]] = None,
    ):
        self.custom_styles = list(custom_styles or [])
        self.custom_palettes = list(custom_palettes or [])
        self.hidden_style_ids = list(hidden_style_ids or [])

    @property
    def styles(self) -> list[StyleDefinition]:
        return [
            style.model_copy(update={"is_visible": style.id not in self.hidden_style_ids})
            for style in (*DEFAULT_STYLES, *self.custom_styles)
        ]

    @property
    def palettes(self) -> list[ColorPalette]:
        return [*DEFAULT_PALETTES, *self.custom_palettes]

    def resolve_style(self, style_id: str) -> StyleDefinition:
        """Return the style with this id, or the built-in default."""
        return next((style for style in self.styles if style.id == style_id), DEFAULT_STYLE)

    def resolve_palette(self, palette_id: Optional[str]) -> Optional[ColorPalette]:
        if palette_id is None:
            return None
        return next((palette for palette in self.palettes if palette.id == palette_id), None)


class PreferencesStore:
    """Loads and saves the four preference documents and keeps a Catalog current."""

    def __init__(self, uow_factory: Callable):
        self.uow_factory = uow_factory
        self.config = GenerationConfig()
        self.catalog = Catalog()

    async def load(self) -> None:
        """Read every document; missing or unreadable ones fall back to defaults."""
        async with await self.uow_factory() as uow:
            config = await uow.documents.get(CONFIG_KEY)
            palettes = await uow.documents.get(PALETTES_KEY)
            styles = await uow.documents.get(STYLES_KEY)
            hidden = await uow.documents.get(HIDDEN_STYLES_KEY)

        try:
            self.config = GenerationConfig.model_validate(config) if config else GenerationConfig()
        except ValueError as e:
            logger.warning("preferences.config_invalid", error_message=str(e))
            self.config = GenerationConfig()

        self.catalog = Catalog(
            custom_styles=_validate_items(StyleDefinition, styles, STYLES_KEY),
            custom_palettes=_validate_items(ColorPalette, palettes, PALETTES_KEY),
            hidden_style_ids=list(hidden or []),
        )

    async def _save(self, key: str, value) -> None:
        async with await self.uow_factory() as uow:
            await uow.documents.set(key, value)

    async def save_config(self, config: GenerationConfig) -> None:
        self.config = config
        await self._save(CONFIG_KEY, config.model_dump(mode="json"))

    async def update_config(self, **changes) -> GenerationConfig:
        """Apply field changes to the generation config and persist it."""
        config = GenerationConfig.model_validate({**self.config.model_dump(), **changes})
        await self.save_config(config)
        return config

    async def _save_styles(self) -> None:
        await self._save(
            STYLES_KEY, [style.model_dump(mode="json") for style in self.catalog.custom_styles]
        )

    async def _save_hidden(self) -> None:
        await self._save(HIDDEN_STYLES_KEY, list(self.catalog.hidden_style_ids))

    async def save_style(self, style: StyleDefinition) -> None:
        self.catalog.custom_styles.append(style.model_copy(update={"is_custom": True}))
        await self._save_styles()

    async def update_style(self, style: StyleDefinition) -> None:
        style = style.model_copy(update={"is_custom": True})
        self.catalog.custom_styles = [
            style if existing.id == style.id else existing for existing in self.catalog.custom_styles
        ]
        await self._save_styles()

    async def delete_style(self, style_id: str) -> bool:
        """Delete a custom style. The built-in style cannot be deleted.

        Returns:
            False if the style is built-in, True otherwise
        """
        if any(style.id == style_id for style in DEFAULT_STYLES):
            return False

        self.catalog.custom_styles = [s for s in self.catalog.custom_styles if s.id != style_id]
        self.catalog.hidden_style_ids = [h for h in self.catalog.hidden_style_ids if h != style_id]
        await self._save_styles()
        await self._save_hidden()

        if self.config.style == style_id:
            await self.update_config(style=DEFAULT_STYLE_ID)
        return True

    async def toggle_style_visibility(self, style_id: str) -> bool:
        """Hide a visible style or unhide a hidden one.

        Returns:
            True if the style is visible afterwards
        """
        hidden = self.catalog.hidden_style_ids
        if style_id in hidden:
            self.catalog.hidden_style_ids = [h for h in hidden if h != style_id]
        else:
            self.catalog.hidden_style_ids = [*hidden, style_id]
        await self._save_hidden()
        return style_id not in self.catalog.hidden_style_ids

    async def save_palette(self, palette: ColorPalette) -> None:
        self.catalog.custom_palettes.append(palette.model_copy(update={"is_custom": True}))
        await self._save(
            PALETTES_KEY, [p.model_dump(mode="json") for p in self.catalog.custom_palettes]
        )

    async def delete_palette(self, palette_id: str) -> None:
        self.catalog.custom_palettes = [
            p for p in self.catalog.custom_palettes if p.id != palette_id
        ]
        await self._save(
            PALETTES_KEY, [p.model_dump(mode="json") for p in self.catalog.custom_palettes]
        )
        if self.config.selected_palette_id == palette_id:
            await self.update_config(selected_palette_id=None)
