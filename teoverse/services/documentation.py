"""
TeoVerse - Documentation Generator

Writes a markdown article about one of the service's features from its
own source code, with a generated header image. Articles are cached per
topic and tagged with the application version they describe.
"""

import asyncio
import hashlib
from datetime import UTC, datetime
from pathlib import Path

import structlog

from teoverse.config import FederationIdentity, get_federation_identity
from teoverse.models.media import DocumentationOutput, GenyInput, ImageSize
from teoverse.monitoring.metrics import documentation_generation_duration_seconds, track_time
from teoverse.repositories.media_repository import DocumentationRepository
from teoverse.security.prompt_sanitization import sanitize_for_prompt
from teoverse.services.geny import GenyService
from teoverse.services.llm import LLMService

logger = structlog.get_logger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parent.parent
MAX_SOURCE_CHARS = 12000

DOCUMENTATION_TOPICS: dict[str, list[str]] = {
    "Passport Management & Asset Tokenization": [
        "services/passport.py",
        "repositories/passport_repository.py",
        "models/passport.py",
        "api/routes/passport.py",
    ],
    "Decentralized Exchange (DEX)": [
        "services/dex.py",
        "models/dex.py",
        "api/routes/dex.py",
    ],
    "Federation Linking System": [
        "services/federation_links.py",
        "federation/protocol.py",
        "api/routes/federations.py",
    ],
    "Public AI Ambassador": [
        "services/ambassador.py",
        "api/routes/public.py",
    ],
    "Dashboard & Federation Flag Generation": [
        "services/dashboard.py",
        "services/flag.py",
        "services/geny.py",
        "api/routes/dashboard.py",
    ],
}

DOCUMENTATION_SYSTEM_PROMPT = """\
You are an expert technical writer for the TeoVerse project. Your task is to write a clear, concise, and professional documentation article about a specific feature.

The relevant source files of the feature are provided inside <source_file> tags. Read them to understand the implementation, then write a markdown article explaining the feature. The article should be easy for a new developer to understand.

- Start with a high-level overview of the feature and its purpose.
- Explain the key components (e.g., API routes, services, repositories).
- Describe the user flow or data flow involved.
- Use markdown for formatting, including headers, lists, and code blocks for short snippets if necessary.
- Do NOT just copy the file content. Synthesize and explain it in your own words.
- The article should be about the feature, not about how to use the documentation generator itself."""

HEADER_IMAGE_SIZE = ImageSize(width=1280, height=720)


class UnknownTopicError(Exception):
    """Documentation was requested for a topic that has none."""


class DocumentationSourceError(Exception):
    """A source path outside the package was requested."""


class DocumentationGenerationError(Exception):
    """The article or its image could not be produced."""


def topic_hash(topic: str) -> str:
    return hashlib.sha256(topic.encode("utf-8")).hexdigest()


def read_source_file(relative_path: str, root: Path = PACKAGE_ROOT) -> str:
    """
    Contents of a package source file.

    Raises:
        DocumentationSourceError: The path resolves outside ``root``
    """
    resolved = (root / relative_path).resolve()
    if not resolved.is_relative_to(root.resolve()):
        raise DocumentationSourceError("Access denied. Only files within the package can be read.")
    try:
        content = resolved.read_text(encoding="utf-8")
    except OSError:
        logger.warning("documentation_source_unreadable", path=relative_path)
        return f"Error: Could not read file at path: {relative_path}. The file might not exist."
    if len(content) > MAX_SOURCE_CHARS:
        content = content[:MAX_SOURCE_CHARS] + "\n# ... [TRUNCATED]"
    return content


class DocumentationService:

    def __init__(
        self,
        doc_repo: DocumentationRepository,
        llm: LLMService,
        geny: GenyService,
        identity: FederationIdentity | None = None,
    ):
        self.doc_repo = doc_repo
        self.llm = llm
        self.geny = geny
        self.identity = identity or get_federation_identity()

    @staticmethod
    def list_topics() -> list[str]:
        return list(DOCUMENTATION_TOPICS)

    async def get_cached_documentation(self, hash_: str) -> DocumentationOutput | None:
        return await self.doc_repo.get_cached(hash_)

    async def cache_documentation(self, hash_: str, data: DocumentationOutput, topic: str) -> None:
        await self.doc_repo.cache(hash_, data, topic=topic, version=self.identity.version)

    async def get_available_documentation(self, version: str | None = None) -> dict[str, DocumentationOutput]:
        """Cached articles for ``version`` (default: the running version), by topic."""
        docs = await self.doc_repo.list_for_version(version or self.identity.version)
        return {
            doc.topic: DocumentationOutput(article=doc.article, image_url=doc.image_url)
            for doc in docs
        }

    def _source_context(self, topic: str) -> str:
        blocks = []
        for path in DOCUMENTATION_TOPICS[topic]:
            blocks.append(f'<source_file path="{path}">\n{read_source_file(path)}\n</source_file>')
        return "\n\n".join(blocks)

    @track_time(documentation_generation_duration_seconds)
    async def generate_documentation(self, topic: str) -> DocumentationOutput:
        """
        Generate a fresh article and header image for ``topic``.

        Raises:
            UnknownTopicError: ``topic`` is not a documented feature
            DocumentationGenerationError: Empty article or no image
        """
        if topic not in DOCUMENTATION_TOPICS:
            raise UnknownTopicError(f"No documentation is available for topic: {topic}")

        logger.info("documentation_generation_started", topic=topic)

        prompt = (
            "Write a technical documentation article about the following TeoVerse feature: "
            f"{sanitize_for_prompt(topic, max_length=200, field_name='topic')}\n\n"
            f"{self._source_context(topic)}"
        )
        image_request = GenyInput(
            prompt=(
                "A futuristic, abstract, cyberpunk-style technical illustration representing the "
                f'concept of "{topic}". Use a dark theme with vibrant orange (#f56502) and green '
                "(#15b56d) highlights."
            ),
            image_size=HEADER_IMAGE_SIZE,
            # A fresh image for every generation
            salt=datetime.now(UTC).isoformat(),
        )

        article, image = await asyncio.gather(
            self.llm.complete_text(prompt, system_prompt=DOCUMENTATION_SYSTEM_PROMPT),
            self.geny.geny(image_request),
        )

        if not article or not article.strip():
            raise DocumentationGenerationError("The AI model did not return a text response for the article.")
        if not image.url:
            raise DocumentationGenerationError("The Geny service did not return an image URL.")

        return DocumentationOutput(article=article.strip(), image_url=image.url)

    async def get_or_generate(self, topic: str, regenerate: bool = False) -> DocumentationOutput:
        """Cached article for ``topic``, generating and caching it when missing."""
        if topic not in DOCUMENTATION_TOPICS:
            raise UnknownTopicError(f"No documentation is available for topic: {topic}")

        key = topic_hash(topic)
        if not regenerate:
            cached = await self.get_cached_documentation(key)
            if cached is not None:
                logger.debug("documentation_cache_hit", topic=topic)
                return cached

        result = await self.generate_documentation(topic)
        await self.cache_documentation(key, result, topic)
        logger.info("documentation_generated", topic=topic, article_chars=len(result.article))
        return result
