import os
import sys
import logging
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

from repowiki.logging_config import setup_logging

# Configure logging
setup_logging()
logger = logging.getLogger(__name__)

import uvicorn

from repowiki.config import GOOGLE_API_KEY, OPENAI_API_KEY, configs

is_development = os.environ.get("NODE_ENV") != "production"


def _check_provider_keys() -> None:
    provider = configs.get("default_provider", "openai")
    if provider == "openai" and not OPENAI_API_KEY:
        logger.warning("OPENAI_API_KEY not configured; wiki generation will fail")
    elif provider == "google" and not GOOGLE_API_KEY:
        logger.warning("GOOGLE_API_KEY not configured; wiki generation will fail")


async def generate_once(owner: str, repo: str, output: str = None) -> int:
    """Run one generation without the server and write the wiki JSON."""
    from repowiki.github_client import GitHubClient
    from repowiki.llm import LLMClient
    from repowiki.wiki_cache import WikiCache
    from repowiki.wiki_generator import WikiGenerator
    from repowiki.errors import WikiError, to_error_event

    def _print_progress(event) -> None:
        if event.phase == "feature_complete":
            logger.info("Feature ready: %s (%d/%d)", event.feature.name,
                        event.features_complete, event.features_total)

    async with GitHubClient() as github:
        generator = WikiGenerator(github=github, llm=LLMClient(), cache=WikiCache())
        try:
            wiki = await generator.generate_wiki(owner, repo, on_progress=_print_progress)
        except WikiError as exc:
            error = to_error_event(exc)
            logger.error("Generation failed [%s]: %s", error.code, error.message)
            return 1

    data = wiki.model_dump_json(by_alias=True, indent=2)
    if output:
        with open(output, "w", encoding="utf-8") as f:
            f.write(data)
        logger.info("Wrote %d features to %s", len(wiki.features), output)
    else:
        print(data)
    return 0


def main() -> None:
    import argparse

    parser = argparse.ArgumentParser(description="RepoWiki API Server")
    parser.add_argument("--generate", metavar="OWNER/REPO", help="Generate one wiki and exit")
    parser.add_argument("--output", metavar="FILE", help="Write the generated wiki JSON to FILE")
    args = parser.parse_args()

    _check_provider_keys()

    if args.generate:
        import asyncio
        owner, _, repo = args.generate.partition("/")
        if not owner or not repo:
            parser.error("--generate expects OWNER/REPO")
        logger.info("Running in one-shot mode for %s/%s", owner, repo)
        sys.exit(asyncio.run(generate_once(owner, repo, args.output)))

    # Get port from environment variable or use default
    port = int(os.environ.get("PORT", 8001))

    logger.info(f"Starting RepoWiki API on port {port}")

    uvicorn.run(
        "repowiki.api:app",
        host="0.0.0.0",
        port=port,
        reload=is_development,
        reload_excludes=["**/logs/*", "**/__pycache__/*", "**/*.pyc"] if is_development else None,
    )


if __name__ == "__main__":
    main()
