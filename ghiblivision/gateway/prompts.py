"""Prompt text for Ghibli-style transformations."""

DEFAULT_PROMPT = (
    "Transform this image into Studio Ghibli style artwork with soft pastel colors, "
    "detailed natural elements, and whimsical characters"
)

STYLE_PREFIX = "Transform this image into Studio Ghibli style."

DESCRIBE_SYSTEM_PROMPT = (
    "You are an expert at analyzing images and describing them in detail for artistic transformation."
)

DESCRIBE_USER_PROMPT = (
    "Describe this person/image in detail so it can be transformed into Studio Ghibli style. "
    "Focus on facial features, hair, clothing, and expression."
)

# Used when the vision model answers with no content
FALLBACK_DESCRIPTION = "A person"


def build_prompt(prompt: str = "") -> str:
    """Prompt sent to the provider for a caller-supplied (possibly empty) prompt."""
    prompt = (prompt or "").strip()
    if not prompt:
        return DEFAULT_PROMPT
    return f"{STYLE_PREFIX} {prompt}"


def build_enhanced_prompt(description: str, prompt: str) -> str:
    """Generation prompt embedding the vision model's description of the subject."""
    return f"""Create a Studio Ghibli style character based on this exact description: {description}

The character should have:
1. The same facial features, expression, and pose as in the original image
2. Soft watercolor-like textures with delicate brush strokes typical of Ghibli films
3. Gentle color gradients and simplified but expressive features
4. The same hairstyle and clothing as the original, but in Ghibli style
5. A slightly stylized appearance while maintaining recognizable likeness

Original prompt: {prompt}"""
