"""
Commit Message Pipeline

Wires parsing, filtering, selection, serialization, splitting, request
dispatch and combining into one call.
"""

from dataclasses import dataclass, field

import structlog

from ..config import PipelineConfig
from ..errors import AllChunksFailedError
from ..services.cache import ContentCache
from ..services.llm_client import (
    ChatMessage,
    ModelRequest,
    ModelResponse,
    ModelTransport,
    clean_model_message,
)
from ..services.request_queue import RequestQueue, RetryPolicy
from ..services.usage_tracker import UsageTracker
from .combiner import LongestMessageCombiner, ResultCombiner
from .diff_parser import DiffParser
from .file_selector import (
    AISelectionStrategy,
    FileSelector,
    HeuristicSelectionStrategy,
    selection_ratio,
)
from .formatting import build_system_prompt, parse_commit_response, wrap_diff_content
from .models import Diff, FilterSummary
from .noise_filter import NoiseFilter
from .splitter import DiffSerializer, TokenBudgetSplitter
from .tokenizer import TokenCounter

logger = structlog.get_logger(__name__)


@dataclass
class PreparedDiff:
    """Filtered, selected and serialized diff, ready for splitting."""

    diff: Diff
    content: str
    original_files: int
    summary: FilterSummary

    @property
    def files(self) -> list[str]:
        return [f.path for f in self.diff.files]

    @property
    def is_empty(self) -> bool:
        return not self.diff.files


@dataclass
class GenerationResult:
    message: str
    chunks: int = 0
    from_cache: bool = False
    files: list[str] = field(default_factory=list)


class CommitMessagePipeline:
    """
    Turn raw diff text into a commit message.

    Flow:
    1. Parse, quick filter, detailed filter and rank
    2. Select files for large commits, cap to ``max_files``
    3. Serialize, check the cache
    4. Split into budget-sized chunks, one request each
    5. Combine chunk messages, store in the cache
    """

    def __init__(
        self,
        config: PipelineConfig,
        transport: ModelTransport,
        cache: ContentCache | None = None,
        queue: RequestQueue | None = None,
        selector: FileSelector | None = None,
        combiner: ResultCombiner | None = None,
        usage: UsageTracker | None = None,
        counter: TokenCounter | None = None,
    ):
        self.config = config
        self.transport = transport
        self.usage = usage or UsageTracker()

        self.parser = DiffParser(max_chunk_size=config.max_chunk_size)
        self.noise_filter = NoiseFilter(config.filter)
        self.serializer = DiffSerializer(config.line_caps)
        self.splitter = TokenBudgetSplitter(counter or TokenCounter())

        self.cache = cache or ContentCache(
            cache_dir=config.cache.cache_dir,
            ttl_seconds=config.cache.ttl_seconds,
            max_memory_entries=config.cache.max_memory_entries,
            enabled=config.cache.enabled,
        )
        self.queue = queue or RequestQueue(
            self._send,
            concurrency=config.concurrency,
            retry=RetryPolicy(max_retries=config.max_retries),
        )
        self.selector = selector or FileSelector(
            ai_strategy=AISelectionStrategy(
                self.queue.submit,
                model=config.selection.selection_model or config.model,
                provider=config.provider,
            ),
            heuristic_strategy=HeuristicSelectionStrategy(),
            options=config.selection,
        )
        self.combiner = combiner or LongestMessageCombiner(config.commit_type, config.scope)

    async def prepare(self, diff_text: str, name_status: str | None = None) -> PreparedDiff:
        """Parse, filter, select and serialize without generating a message."""
        parsed = self.parser.parse(diff_text)
        if name_status:
            parsed = self.parser.apply_statuses(parsed, self.parser.parse_name_status(name_status))

        quick = self.noise_filter.quick_filter(parsed)
        ranked = self.noise_filter.filter_diff(quick)

        max_files = self.config.selection.max_files
        selected = await self.selector.select(ranked.files, max_files)
        selected = selected[:max_files]
        if len(selected) < len(ranked.files):
            logger.info(
                "Selected files for analysis",
                kept=selection_ratio(len(selected), len(ranked.files)),
            )

        diff = Diff.from_files(selected)
        summary = self.noise_filter.filtering_summary(parsed, diff)
        logger.debug(
            "Diff prepared",
            files=len(diff.files),
            lines=diff.total_lines,
            files_removed=summary.files_removed,
            size_reduction=summary.size_reduction,
        )

        return PreparedDiff(
            diff=diff,
            content=self.serializer.serialize(diff) if diff.files else "",
            original_files=len(parsed.files),
            summary=summary,
        )

    async def generate(
        self,
        diff_text: str,
        name_status: str | None = None,
        system_prompt: str | None = None,
        use_cache: bool = True,
    ) -> GenerationResult:
        """
        Generate a commit message for a diff.

        Raises:
            BudgetError: If the system prompt leaves no room for content.
            AllChunksFailedError: If no chunk request succeeded.
        """
        prepared = await self.prepare(diff_text, name_status)
        if prepared.is_empty:
            logger.info("No relevant changes after filtering")
            return GenerationResult(message="")

        config = self.config
        prompt = system_prompt or build_system_prompt(config.commit_type, config.scope)

        if use_cache:
            cached = self.cache.get(
                prepared.content, config.model, config.provider, config.temperature
            )
            if cached is not None:
                return GenerationResult(
                    message=cached,
                    from_cache=True,
                    files=prepared.files,
                )

        chunks = self.chunk_content(prepared.content, prompt)
        messages = await self.process_chunks(chunks, prompt)
        message = self.combiner.combine(messages)

        if use_cache:
            self.cache.set(
                prepared.content, message, config.model, config.provider, config.temperature
            )

        return GenerationResult(
            message=message,
            chunks=len(chunks),
            from_cache=False,
            files=prepared.files,
        )

    def chunk_content(self, content: str, system_prompt: str) -> list[str]:
        """Split serialized content so each wrapped chunk fits the budget."""
        wrapper_tokens = self.splitter.counter.count(wrap_diff_content(""), self.config.model)
        return self.splitter.split(
            content,
            self.config.model,
            system_prompt=system_prompt,
            extra_reserved=wrapper_tokens,
        )

    async def process_chunks(self, chunks: list[str], system_prompt: str) -> list[str]:
        """
        Send one request per chunk and collect the messages that succeed.

        Partial failure is tolerated; only zero successes is an error.
        """
        requests = [self._build_request(chunk, system_prompt) for chunk in chunks]
        results = await self.queue.map(requests)

        messages: list[str] = []
        errors: list[BaseException] = []
        for index, result in enumerate(results):
            if isinstance(result, BaseException):
                logger.warning("Chunk request failed", chunk=index, error=str(result))
                errors.append(result)
                continue
            try:
                cleaned = clean_model_message(result.message, self.config.provider)
            except Exception as e:
                logger.warning("Chunk response unusable", chunk=index, error=str(e))
                errors.append(e)
                continue
            messages.append(parse_commit_response(cleaned).commit_message)

        if not messages:
            raise AllChunksFailedError(errors)

        if errors:
            logger.warning(
                "Some chunks failed",
                succeeded=len(messages),
                failed=len(errors),
            )
        return messages

    async def aclose(self) -> None:
        await self.queue.shutdown()

    def _build_request(self, chunk: str, system_prompt: str) -> ModelRequest:
        return ModelRequest(
            provider=self.config.provider,
            model=self.config.model,
            messages=[
                ChatMessage(role="system", content=system_prompt),
                ChatMessage(role="user", content=wrap_diff_content(chunk)),
            ],
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        )

    async def _send(self, request: ModelRequest) -> ModelResponse:
        response = await self.transport.send(request)
        self.usage.record(response, request.provider)
        return response
