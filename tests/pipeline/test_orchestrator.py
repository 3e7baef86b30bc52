"""
End-to-end tests for CommitMessagePipeline.

Real parsing, filtering, splitting and caching; the model transport is an
AsyncMock so no network is touched.
"""

from unittest.mock import AsyncMock

import pytest

from commit_forge.errors import AllChunksFailedError, ApiError
from commit_forge.pipeline.orchestrator import CommitMessagePipeline
from commit_forge.services.request_queue import RequestQueue


@pytest.fixture
def pipeline(pipeline_config, mock_transport, cache, char_counter):
    return CommitMessagePipeline(
        pipeline_config,
        mock_transport,
        cache=cache,
        counter=char_counter,
    )


# =============================================================================
# PREPARE
# =============================================================================


class TestPrepare:
    """Parse, filter, select and serialize."""

    @pytest.mark.asyncio
    async def test_lock_file_dropped_and_source_ranked_first(self, pipeline, mixed_commit_diff):
        prepared = await pipeline.prepare(mixed_commit_diff)

        assert prepared.files == ["src/app.ts", "README.md"]
        assert prepared.original_files == 3
        assert prepared.summary.files_removed == 1
        assert "package-lock.json" not in prepared.content
        assert prepared.content.index("File: src/app.ts") < prepared.content.index("File: README.md")

    @pytest.mark.asyncio
    async def test_name_status_overrides(self, pipeline, file_diff):
        diff = file_diff("src/new.py", ["def run():", "    return 1"])

        prepared = await pipeline.prepare(diff, name_status="A\tsrc/new.py\n")

        assert prepared.diff.files[0].status.value == "added"
        assert "File: src/new.py (added)" in prepared.content

    @pytest.mark.asyncio
    async def test_max_files_cap(self, pipeline, file_diff):
        pipeline.config.selection.max_files = 2
        diff = "".join(file_diff(f"src/m{i}.py", [f"x{i} = {i}"]) for i in range(5))

        prepared = await pipeline.prepare(diff)

        assert len(prepared.files) == 2

    @pytest.mark.asyncio
    async def test_only_noise(self, pipeline, file_diff):
        prepared = await pipeline.prepare(file_diff("yarn.lock", ["dep@1.0.0"]))
        assert prepared.is_empty
        assert prepared.content == ""


# =============================================================================
# GENERATE
# =============================================================================


class TestGenerate:
    """Full cycle through the mocked model."""

    @pytest.mark.asyncio
    async def test_end_to_end(self, pipeline, mock_transport, mixed_commit_diff):
        result = await pipeline.generate(mixed_commit_diff)

        assert result.message == "feat(app): validate computed values"
        assert result.chunks == 1
        assert result.from_cache is False
        assert result.files == ["src/app.ts", "README.md"]

        request = mock_transport.send.await_args.args[0]
        assert request.messages[0].role == "system"
        assert request.messages[1].content.startswith("[DIFF_CONTENT]")
        assert "throw new Error" in request.messages[1].content
        assert pipeline.usage.total_calls == 1

    @pytest.mark.asyncio
    async def test_second_call_served_from_cache(self, pipeline, mock_transport, mixed_commit_diff):
        first = await pipeline.generate(mixed_commit_diff)
        second = await pipeline.generate(mixed_commit_diff)

        assert second.from_cache is True
        assert second.message == first.message
        assert mock_transport.send.await_count == 1

    @pytest.mark.asyncio
    async def test_cache_bypass(self, pipeline, mock_transport, mixed_commit_diff):
        await pipeline.generate(mixed_commit_diff, use_cache=False)
        await pipeline.generate(mixed_commit_diff, use_cache=False)

        assert mock_transport.send.await_count == 2

    @pytest.mark.asyncio
    async def test_empty_diff_makes_no_request(self, pipeline, mock_transport):
        result = await pipeline.generate("")

        assert result.message == ""
        assert result.chunks == 0
        mock_transport.send.assert_not_called()

    @pytest.mark.asyncio
    async def test_required_type_enforced(self, pipeline, make_response):
        pipeline.combiner.commit_type = "fix"
        pipeline.transport.send.side_effect = [
            make_response('{"commitMessage": "feat: part one of the change"}'),
            make_response('{"commitMessage": "feat: two"}'),
        ]

        messages = await pipeline.process_chunks(["chunk a", "chunk b"], "system")

        assert pipeline.combiner.combine(messages) == "fix: part one of the change"


class TestProcessChunks:
    """Partial failure tolerance."""

    @pytest.mark.asyncio
    async def test_partial_failure_tolerated(self, pipeline, mock_transport, make_response):
        mock_transport.send.side_effect = [
            ApiError("bad request", status_code=400),
            make_response('{"commitMessage": "feat: survived"}'),
        ]

        messages = await pipeline.process_chunks(["one", "two"], "system")

        assert messages == ["feat: survived"]

    @pytest.mark.asyncio
    async def test_all_failed(self, pipeline, mock_transport):
        mock_transport.send.side_effect = ApiError("bad request", status_code=400)

        with pytest.raises(AllChunksFailedError) as exc_info:
            await pipeline.process_chunks(["one", "two"], "system")

        assert len(exc_info.value.errors) == 2
        assert "2 errors occurred" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unusable_reply_counts_as_failure(self, pipeline, mock_transport, make_response):
        mock_transport.send.return_value = make_response("ok")

        with pytest.raises(AllChunksFailedError):
            await pipeline.process_chunks(["one"], "system")


class TestLifecycle:
    @pytest.mark.asyncio
    async def test_aclose_shuts_queue(self, pipeline_config, mock_transport, cache):
        queue = RequestQueue(AsyncMock())
        pipeline = CommitMessagePipeline(pipeline_config, mock_transport, cache=cache, queue=queue)

        await pipeline.aclose()

        assert queue.closed
