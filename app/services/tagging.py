"""Automatic tags for uploaded photos.

Uses an OpenAI vision model when an API key is configured, otherwise a few
cheap image statistics computed with Pillow.
"""
import base64
import io
import json
import logging

from PIL import Image, ImageStat

from app.config import settings

logger = logging.getLogger(__name__)

MAX_AUTO_TAGS = 5

TAGGING_PROMPT = """\
You tag photos taken at live events (weddings, parties, conferences, sport).

Reply ONLY with a JSON object, no extra text:
{"tags": ["tag1", "tag2"]}

Rules:
- between 2 and 5 tags, lowercase, one or two words each
- describe subject and setting (e.g. "portrait", "group", "stage", "outdoor", "night")
"""


def heuristic_tags(thumbnail: bytes) -> list[str]:
    """Orientation, colour and brightness tags derived from the thumbnail."""
    with Image.open(io.BytesIO(thumbnail)) as image:
        image = image.convert("RGB")
        width, height = image.size
        tags = []
        if width > height:
            tags.append("landscape")
        elif height > width:
            tags.append("portrait")
        else:
            tags.append("square")

        r, g, b = ImageStat.Stat(image).mean
        if max(abs(r - g), abs(g - b), abs(r - b)) < 4:
            tags.append("black-and-white")
        else:
            tags.append("color")

        brightness = ImageStat.Stat(image.convert("L")).mean[0]
        if brightness < 60:
            tags.append("low-light")
        elif brightness > 190:
            tags.append("bright")
    return tags


def _parse_tags(raw: str) -> list[str]:
    # Parse JSON (handle markdown code blocks)
    text = raw.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        lines = [line for line in lines if not line.strip().startswith("```")]
        text = "\n".join(lines)

    parsed = json.loads(text)
    tags = []
    for tag in parsed.get("tags", []):
        if isinstance(tag, str) and tag.strip():
            tags.append(tag.strip().lower()[:50])
    return tags[:MAX_AUTO_TAGS]


async def _openai_tags(thumbnail: bytes) -> list[str]:
    from openai import AsyncOpenAI

    client = AsyncOpenAI(api_key=settings.openai_api_key)
    b64 = base64.b64encode(thumbnail).decode("utf-8")
    response = await client.chat.completions.create(
        model=settings.openai_model,
        messages=[{
            "role": "user",
            "content": [
                {"type": "text", "text": TAGGING_PROMPT},
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:image/jpeg;base64,{b64}", "detail": "low"},
                },
            ],
        }],
        max_tokens=100,
        temperature=0.1,
    )
    raw = response.choices[0].message.content or ""
    logger.info("Auto-tag raw response: %s", raw)
    return _parse_tags(raw)


async def generate_tags(thumbnail: bytes) -> list[str]:
    """Return auto tags for a photo; never fails the upload."""
    if settings.openai_api_key:
        try:
            return await _openai_tags(thumbnail)
        except Exception as e:
            logger.exception("Auto-tagging via OpenAI failed, using heuristics: %s", e)
    return heuristic_tags(thumbnail)
