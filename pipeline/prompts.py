from .io_types import ItemType


ANALYZE_ITEM_PROMPT = (
    "Analyze this image and tell me if it is clothing (tops, bottoms, dresses, jackets) "
    "or an accessory (glasses, jewelry, hats, scarves, watches, bags). "
    "Return exactly one word: 'clothing' or 'accessory'."
)

DESCRIBE_ITEM_PROMPT = (
    "Describe this clothing or accessory item in detail for a text-to-image prompt. "
    "Focus on material, color, texture, fit, and style. Keep it under 40 words. "
    "Example output: 'A navy blue denim jacket with silver buttons and a shearling collar'."
)

REVIEW_PROMPT = "Look at this image. Does it show a person wearing clothing? Answer exactly YES or NO."

DESCRIPTION_FALLBACK_EMPTY = "fashion item"
DESCRIPTION_FALLBACK_ERROR = "stylish clothing item"

_STRICT_CLOTHING = """You are given two images:
@img1 → the person
@img2 → the clothing item.

Make the person from @img1 wear the clothing from @img2.
Do not alter the facial appearance, identity, skin tone, or pose of the person.
Do not modify or redesign the clothing from @img2 in any way.

Fit the clothing naturally on the body, matching lighting, perspective, and proportions.
Blend realistically without changing anything else in the original image.

Output only the final edited image."""

_STRICT_ACCESSORY = """You are given two images:
@img1 → the person
@img2 → the accessory.

Place the accessory from @img2 naturally on the person in @img1, in the correct location for that accessory.
Do not alter the person's facial appearance, identity, or any part of their original image.
Do not alter or redesign the accessory from @img2.

Match lighting, shadows, scale, and perspective for realism.
Blend seamlessly without modifying anything except what is required to place the accessory.

Output only the final edited image."""

# Framed as a creative composite so identity filters are less likely to trip
_RELAXED_CLOTHING = """Create a high-quality fashion editorial image featuring the person from the first image wearing the {description} shown in the second image.
- Blend the clothing naturally onto the body.
- Match the lighting and shadows of the original photo.
- Keep the person's pose and expression unchanged.
- This is a digital fashion composite."""

_RELAXED_ACCESSORY = """Create a realistic image of the person from the first image wearing the accessory ({description}) from the second image.
- Place the accessory naturally.
- Ensure lighting matches."""

_REFINE = """Regenerate this image with the following modification: "{instruction}".
- Maintain the exact identity, face, and body of the person.
- Keep the original background and lighting.
- Only change the clothing/accessory as requested.
- Output a photorealistic image."""


def strict_prompt(item_type: ItemType) -> str:
    return _STRICT_CLOTHING if item_type == "clothing" else _STRICT_ACCESSORY


def relaxed_prompt(item_type: ItemType, description: str) -> str:
    template = _RELAXED_CLOTHING if item_type == "clothing" else _RELAXED_ACCESSORY
    return template.format(description=description)


def refine_prompt(instruction: str) -> str:
    return _REFINE.format(instruction=instruction)
