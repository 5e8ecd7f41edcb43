from .models import GenerationRequest, Language

PROMPT_WORD_CONTENT = """
For the English word "{word}", provide:
1.  **`meaning`**: A clear, concise meaning/definition in English.
2.  **`example`**: One practical example sentence using this word.
3.  **`imagePrompt`**: A simple, vivid image description (in English, one sentence, suitable for AI image generation).

Example image descriptions:
- For "serendipity": "A peaceful scene of someone discovering something beautiful by chance"
- For "resilience": "A strong tree standing firmly against powerful winds"

Respond ONLY with a single JSON object. Do not include any other text, explanations,
or markdown formatting (like `json` or ```) before or after the JSON object.
{{
  "meaning": "Meaning in English",
  "example": "Example sentence using the word",
  "imagePrompt": "A vivid, simple description for image generation"
}}
"""

PROMPT_WORD_CONTENT_LANGUAGE = """
An English-speaking beginner is learning {language_name}. For the {language_name} word "{word}", provide:
1.  **`meaning`**: A clear, concise meaning in English (one short phrase).
2.  **`example`**: One short example sentence written in {language_name} that uses the word,
    followed by its English translation in parentheses.
    *   Use beginner-level vocabulary and grammar only.
    *   Keep the {language_name} sentence under {max_length}.
    *   {script_rule}
3.  **`imagePrompt`**: A simple, vivid image description (in English, one sentence, suitable for AI image generation).
    *   No text, letters or captions in the image.

Respond ONLY with a single JSON object. Do not include any other text, explanations,
or markdown formatting (like `json` or ```) before or after the JSON object.
{{
  "meaning": "Meaning in English",
  "example": "{language_name} example sentence (English translation)",
  "imagePrompt": "A vivid, simple description for image generation"
}}
"""

LANGUAGE_RULES = {
    Language.JAPANESE: {
        "language_name": "Japanese",
        "max_length": "20 characters",
        "script_rule": "Write any kanji with its hiragana reading in parentheses right after it, e.g. 猫(ねこ).",
    },
    Language.FINNISH: {
        "language_name": "Finnish",
        "max_length": "8 words",
        "script_rule": "Use standard Finnish spelling with ä and ö; avoid colloquial spoken forms.",
    },
}


def compose_prompt(request: GenerationRequest) -> str:
    """Build the text-provider instruction for a headword."""
    if request.language is None:
        return PROMPT_WORD_CONTENT.format(word=request.word)
    rules = LANGUAGE_RULES[request.language]
    return PROMPT_WORD_CONTENT_LANGUAGE.format(word=request.word, **rules)


def fallback_image_prompt(word: str) -> str:
    return f"a simple illustration of {word}"
