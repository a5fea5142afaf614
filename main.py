#!/usr/bin/env python3
import argparse
import json
import logging
import sys
from pathlib import Path

from aspec import __version__
from aspec.chunker import SemanticChunker
from aspec.config import ExtractionConfig, load_system_prompt
from aspec.data_models import CompletionOptions
from aspec.errors import SchemaConformanceError
from aspec.llm_client import create_client
from aspec.merger import MergeStrategy
from aspec.mock_client import MockClient
from aspec.orchestrator import ExtractionPipeline, build_extraction_prompt
from aspec.processors import PayloadProcessor
from aspec.prompts import SPEC_PROMPT, render_template
from aspec.render import Renderer
from aspec.specs import load_spec
from aspec.stats import UsageStats, format_stats
from aspec.tokenizer import TokenCounter
from aspec.utils import generate_output_path, read_input, write_output
from aspec.validator import SchemaValidator

logger = logging.getLogger(__name__)

EXIT_ERROR = 1
EXIT_INVALID = 3


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Log to stderr so stdout stays free for extracted output."""
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stderr)],
        force=True,
    )


def _resolve_config(args, **overrides) -> ExtractionConfig:
    return ExtractionConfig.from_env(
        model=getattr(args, "model", None),
        provider=getattr(args, "provider", None),
        **overrides,
    ).validate_config()


def _create_client(config: ExtractionConfig):
    base_url = config.base_url if config.provider == "openrouter" else None
    return create_client(
        config.provider,
        model_name=config.model,
        base_url=base_url,
        system_prompt=load_system_prompt(),
    )


def _stdout_delta(delta: str) -> None:
    sys.stdout.write(delta)
    sys.stdout.flush()


def cmd_extract(args) -> int:
    spec = load_spec(args.spec_path)
    config = _resolve_config(
        args,
        chunk_size=args.chunk_size,
        merge_strategy=args.merge_strategy,
        merge_instructions=args.merge_instructions,
        max_retries=args.max_retries,
        max_workers=args.workers,
        validate=args.validate or args.strict,
        strict=args.strict,
        show_progress=args.progress,
    )
    text = read_input(args.input)

    client = _create_client(config)
    pipeline = ExtractionPipeline(spec, client, config)
    try:
        report = pipeline.extract(text)
    except SchemaConformanceError as e:
        logger.error(f"Final result failed validation: {e}")
        if e.outcome is not None:
            sys.stderr.write(e.outcome.format_errors() + "\n")
        return EXIT_INVALID

    processor = PayloadProcessor()
    try:
        output = processor.format(report.payload, compact=args.compact)
    except ValueError as e:
        logger.warning(f"{e}; writing raw output")
        output = report.payload
    write_output(output + "\n", args.out)

    if args.stats:
        sys.stderr.write(format_stats(report.usage))
    return 0


def cmd_render(args) -> int:
    spec = load_spec(args.spec_path)
    config = _resolve_config(args)
    text = read_input(args.input)

    client = _create_client(config)
    stream_to_stdout = args.stream and not args.out
    renderer = Renderer(
        spec,
        client,
        extraction_prompt=config.extraction_prompt,
        verbalization_prompt=config.verbalization_prompt,
    )
    result = renderer.render(
        text,
        stream=args.stream,
        on_delta=_stdout_delta if stream_to_stdout else None,
        validate=args.validate,
        max_retries=args.max_retries,
    )

    if args.save_json:
        json_path = generate_output_path(args.out, ".json")
        write_output(PayloadProcessor().pretty_or_raw(result.json_payload) + "\n", json_path)

    if stream_to_stdout:
        sys.stdout.write("\n")
    else:
        write_output(result.markdown, args.out)

    if args.stats:
        sys.stderr.write(format_stats(result.usage))
    return 0


def cmd_validate(args) -> int:
    spec = load_spec(args.spec_path)
    payload = Path(args.json_file).read_text(encoding="utf-8")

    outcome = SchemaValidator(spec).validate(payload)
    if outcome.valid:
        print(f"✓ JSON is valid according to {spec.slug} schema")
        return 0

    print(f"✗ JSON validation failed:\n{outcome.format_errors()}")
    return EXIT_INVALID


def cmd_chunk(args) -> int:
    text = read_input(args.input)
    config = ExtractionConfig.from_env(chunk_size=args.chunk_size).validate_config()
    counter = TokenCounter()
    chunker = SemanticChunker(config.chunk_size, counter)

    chunks = chunker.chunk_text(text)
    print(f"Estimated tokens: {counter.count_tokens(text)} (budget {config.chunk_size})")
    print(f"Chunks: {len(chunks)}")
    for chunk in chunks:
        print(f"  Chunk {chunk.index + 1}: {chunk.token_estimate} tokens, {len(chunk)} chars")
    return 0


def cmd_prompt(args) -> int:
    spec = load_spec(args.spec_path)
    config = _resolve_config(args)
    client = _create_client(config)
    prompt = render_template(SPEC_PROMPT, schema=spec.raw)

    if args.stream:
        on_delta = _stdout_delta if not args.out else None
        response = client.complete_stream(prompt, on_delta)
    else:
        response = client.complete(prompt)

    if args.out:
        write_output(response.content, args.out)
    elif args.stream:
        sys.stdout.write("\n")
    else:
        print(response.content)
    return 0


def cmd_test(args) -> int:
    spec = load_spec(args.spec_path)
    text = Path(args.fixture).read_text(encoding="utf-8")
    config = _resolve_config(args)

    if config.provider == "mock":
        client = MockClient()
        if args.mock_fixture:
            client.load_fixture(args.mock_fixture)
    else:
        client = _create_client(config)

    processor = PayloadProcessor()
    prompt = build_extraction_prompt(spec, text, config.extraction_prompt)
    response = client.complete(prompt, CompletionOptions(force_json=True))
    payload = processor.clean(response.content)

    outcome = SchemaValidator(spec).validate(payload)
    if not outcome.valid:
        print(f"✗ Test failed: validation errors\n{outcome.format_errors()}")
        return EXIT_ERROR

    if args.expected:
        expected_text = Path(args.expected).read_text(encoding="utf-8")
        if json.loads(payload) != json.loads(expected_text):
            print("✗ Test failed: output doesn't match expected")
            print("Expected:")
            print(expected_text)
            print("Actual:")
            print(payload)
            return EXIT_ERROR

    if args.stats:
        sys.stderr.write(format_stats(UsageStats().add(response)))
    print(f"✓ Test passed for {spec.slug}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aspec",
        description="Schema-driven extraction: turn unstructured input into schema-conformant JSON"
    )
    parser.add_argument("--version", action="version", version=f"aspec {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log errors")

    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_spec(sub):
        sub.add_argument("--spec-path", required=True, help="Path to the JSON schema file")

    def add_provider(sub):
        sub.add_argument("--model", help="Model to use (default: $ASPEC_MODEL)")
        sub.add_argument("--provider", help="Completion provider: openrouter, openai, gemini or mock")

    extract = subparsers.add_parser("extract", help="Extract structured JSON from unstructured input")
    add_spec(extract)
    add_provider(extract)
    extract.add_argument("--in", dest="input", help="Input file or directory (default: stdin)")
    extract.add_argument("--out", help="Output file (default: stdout)")
    extract.add_argument("--max-retries", type=int, help="Repair attempts after a validation failure")
    extract.add_argument("--validate", action="store_true", help="Validate the result against the schema")
    extract.add_argument("--strict", action="store_true",
                         help="Exit with status 3 when the final result fails validation (implies --validate)")
    extract.add_argument("--compact", action="store_true", help="Write the JSON without pretty-printing")
    extract.add_argument("--stats", action="store_true", help="Print token usage and cost to stderr")
    extract.add_argument("--chunk-size", type=int, help="Maximum estimated tokens per request")
    extract.add_argument("--merge-strategy", choices=[s.value for s in MergeStrategy],
                         help="How chunk results are merged")
    extract.add_argument("--merge-instructions", help="Custom instructions replacing the default merge rules")
    extract.add_argument("--workers", type=int, help="Parallel chunk extractions for two-pass strategies")
    extract.add_argument("--progress", action="store_true", help="Show a progress bar over chunks")
    extract.set_defaults(func=cmd_extract)

    render = subparsers.add_parser("render", help="Render unstructured input to Markdown")
    add_spec(render)
    add_provider(render)
    render.add_argument("--in", dest="input", help="Input file or directory (default: stdin)")
    render.add_argument("--out", help="Output Markdown file (default: stdout)")
    render.add_argument("--save-json", action="store_true", help="Also save the intermediate JSON")
    render.add_argument("--stream", action=argparse.BooleanOptionalAction, default=True,
                        help="Stream the Markdown as it is generated")
    render.add_argument("--validate", action="store_true", help="Validate the intermediate JSON")
    render.add_argument("--max-retries", type=int, default=2, help="Repair attempts when validating")
    render.add_argument("--stats", action="store_true", help="Print token usage and cost to stderr")
    render.set_defaults(func=cmd_render)

    validate = subparsers.add_parser("validate", help="Validate a JSON file against a schema")
    validate.add_argument("json_file", help="JSON file to validate")
    add_spec(validate)
    validate.set_defaults(func=cmd_validate)

    chunk = subparsers.add_parser("chunk", help="Show how input would be split into chunks")
    chunk.add_argument("--in", dest="input", help="Input file or directory (default: stdin)")
    chunk.add_argument("--chunk-size", type=int, help="Maximum estimated tokens per chunk")
    chunk.set_defaults(func=cmd_chunk)

    prompt = subparsers.add_parser("prompt", help="Turn a schema into a plain-English prompt")
    add_spec(prompt)
    add_provider(prompt)
    prompt.add_argument("--out", help="Output file (default: stdout)")
    prompt.add_argument("--stream", action=argparse.BooleanOptionalAction, default=True,
                        help="Stream the prompt as it is generated")
    prompt.set_defaults(func=cmd_prompt)

    test = subparsers.add_parser("test", help="Run a deterministic extraction against the mock provider")
    add_spec(test)
    test.add_argument("--fixture", required=True, help="Input fixture file")
    test.add_argument("--expected", help="Expected JSON output")
    test.add_argument("--mock-fixture", help="Response the mock provider returns")
    test.add_argument("--provider", default="mock", help="Completion provider (default: mock)")
    test.add_argument("--model", help="Model to use with a real provider")
    test.add_argument("--stats", action="store_true", help="Print token usage to stderr")
    test.set_defaults(func=cmd_test)

    return parser


def main(argv=None):
    """
    Main entry point for the aspec command line.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose, args.quiet)

    try:
        exit_code = args.func(args)
    except Exception as e:
        logger.error(f"Error during {args.command}: {str(e)}", exc_info=True)
        exit_code = EXIT_ERROR

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
