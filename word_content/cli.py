"""Command-line interface for the word content generator."""

import asyncio
import json

import click
import structlog

from .config import Settings
from .errors import WordContentError
from .generator import ContentGenerator
from .log_config import configure_logging
from .models import Language, WordRecord, GenerationRequest

log = structlog.get_logger()


@click.command()
@click.argument("word")
@click.option(
    "--language", "-l",
    type=click.Choice([lang.value for lang in Language]),
    default=None,
    help="Language the learner is studying"
)
@click.option(
    "--text-provider",
    type=click.Choice(["anthropic", "openai"]),
    default=None,
    help="Override TEXT_PROVIDER"
)
@click.option(
    "--image-provider",
    type=click.Choice(["replicate", "openai"]),
    default=None,
    help="Override IMAGE_PROVIDER"
)
@click.option(
    "--no-images",
    is_flag=True,
    help="Skip image generation"
)
@click.option(
    "--strict-images",
    is_flag=True,
    help="Fail the whole request when image generation fails"
)
@click.option(
    "--record",
    is_flag=True,
    help="Print a full Word record instead of the generation result"
)
@click.option(
    "--verbose", "-v",
    is_flag=True,
    help="Enable verbose logging"
)
def main(word: str, language: str, text_provider: str, image_provider: str,
         no_images: bool, strict_images: bool, record: bool, verbose: bool):
    """Generate meaning, example sentence and image for WORD."""
    configure_logging(verbose)

    overrides = {}
    if text_provider:
        overrides["text_provider"] = text_provider
    if image_provider:
        overrides["image_provider"] = image_provider
    if no_images:
        overrides["image_generation_enabled"] = False
    if strict_images:
        overrides["image_failure_policy"] = "fail"

    try:
        settings = Settings.from_env(**overrides).validate_credentials()
        log.info("Starting word content generator",
                 word=word,
                 language=language,
                 text_provider=settings.text_provider,
                 image_provider=settings.image_provider if settings.image_generation_enabled else None)

        result = asyncio.run(ContentGenerator(settings).generate(word, language))
    except WordContentError as e:
        log.error("Generation failed", stage=e.stage, error=str(e))
        raise click.ClickException(str(e))

    if record:
        payload = WordRecord.from_result(GenerationRequest.build(word, language), result).model_dump(mode="json")
    else:
        payload = result.to_payload()
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
