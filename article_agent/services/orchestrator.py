"""Run orchestrator: sequences pipeline stages and records their progress.

A run is a linear pipeline (research → outline → draft → refine → export);
each stage consumes the previous stage's output, so stages run strictly one
after another inside a single asyncio task per run. Every state transition is
committed through the RunStore before the next stage's collaborator is
invoked. Store calls are blocking SQLAlchemy work and run in worker threads
via ``asyncio.to_thread`` so the event loop keeps serving other runs.

Cancellation is advisory. ``cancel`` marks the run terminal and stops later
stages from starting, but a stage already awaiting its collaborator runs to
completion (or to its timeout) and has its own outcome recorded.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

from article_agent.agents.refine import basic_seo_metadata
from article_agent.config import settings
from article_agent.errors import (
    InvalidRequest,
    InvalidState,
    StageFailure,
    StageTimeout,
    error_message,
)
from article_agent.schemas.article import Article, ArticleMetadata
from article_agent.schemas.run import (
    PIPELINE_ORDER,
    GenerationOptions,
    RunFilter,
    RunKind,
    RunProgress,
    RunRecord,
    RunStatus,
    StageName,
    StageRecord,
    StageStatus,
    TopicRef,
)
from article_agent.schemas.topic import TopicConfig
from article_agent.services.article_store import ArticleStore
from article_agent.services.collaborators import CollaboratorFactory, StageCollaborators
from article_agent.services.exporter import Exporter
from article_agent.services.progress import project_status
from article_agent.services.run_store import RunStore, utcnow
from article_agent.services.topic_loader import TopicLoader

logger = logging.getLogger(__name__)

CANCELLED_BY_USER = "cancelled by user"
INTERRUPTED_BY_RESTART = "interrupted by restart"
DEFAULT_REGENERATE_STAGES = frozenset({StageName.REFINE, StageName.EXPORT})

# Stage name -> orchestrator method running it
STAGE_HANDLERS: Dict[StageName, str] = {
    StageName.RESEARCH: "_run_research",
    StageName.OUTLINE: "_run_outline",
    StageName.DRAFT: "_run_draft",
    StageName.REFINE: "_run_refine",
    StageName.EXPORT: "_run_export",
}

# Article fields each stage writes; a regeneration stores only these
STAGE_FIELDS: Dict[StageName, Tuple[str, ...]] = {
    StageName.RESEARCH: ("research", "citations"),
    StageName.OUTLINE: ("outline", "title"),
    StageName.DRAFT: ("draft",),
    StageName.REFINE: ("content", "seo"),
    StageName.EXPORT: ("files", "status"),
}

_unhandled = (set(StageName) - set(STAGE_HANDLERS)) | (set(StageName) - set(STAGE_FIELDS))
if _unhandled:
    raise RuntimeError(f"No handler for stages: {sorted(s.value for s in _unhandled)}")


def parse_stages(names: Optional[Iterable[str]]) -> FrozenSet[StageName]:
    """Validate caller-supplied stage names; None means the default set."""
    if names is None:
        return DEFAULT_REGENERATE_STAGES

    stages = set()
    for name in names:
        try:
            stages.add(StageName(name))
        except ValueError:
            valid = ", ".join(s.value for s in PIPELINE_ORDER)
            raise InvalidRequest(f"Unknown stage {name!r}; expected one of: {valid}") from None
    if not stages:
        raise InvalidRequest("At least one stage must be requested")
    return frozenset(stages)


@dataclass
class PipelineContext:
    """Everything one run's stages read and write."""

    run_id: str
    kind: RunKind
    topic: TopicConfig
    collaborators: StageCollaborators
    options: GenerationOptions
    article: Article
    to_run: FrozenSet[StageName]
    timeout: float
    started: float = field(default_factory=time.monotonic)


class RunOrchestrator:
    """Owns every RunRecord mutation."""

    def __init__(
        self,
        topic_loader: TopicLoader,
        run_store: RunStore,
        article_store: ArticleStore,
        exporter: Exporter,
        collaborator_factory: CollaboratorFactory,
        stage_timeout: Optional[float] = None,
    ):
        self.topic_loader = topic_loader
        self.run_store = run_store
        self.article_store = article_store
        self.exporter = exporter
        self.collaborator_factory = collaborator_factory
        self.stage_timeout = stage_timeout or settings.STAGE_TIMEOUT_SECONDS
        self._tasks: Dict[str, asyncio.Task] = {}

    @property
    def active_runs(self) -> List[str]:
        """Ids of runs whose pipeline task is still alive in this process."""
        return list(self._tasks)

    # Entry points

    async def start_generation(
        self, topic_ref: TopicRef, options: Optional[GenerationOptions] = None
    ) -> str:
        """Create a run for a topic and start it in the background.

        Raises:
            ConfigError: Topic missing, invalid, unpinned, or naming an unknown model
        """
        options = options or GenerationOptions()
        topic = await self.topic_loader.load_topic(topic_ref.topic_id, topic_ref.version)
        collaborators = self.collaborator_factory(topic)

        skipped = set()
        if options.skip_research or not topic.research.enabled:
            skipped.add(StageName.RESEARCH)
        if options.skip_refinement:
            skipped.add(StageName.REFINE)
        to_run = frozenset(s for s in PIPELINE_ORDER if s not in skipped)

        record = self._new_record(RunKind.GENERATE, topic, options, to_run)
        await asyncio.to_thread(self.run_store.save, record)

        article = Article(
            id=str(uuid.uuid4()),
            topic_id=topic.id,
            topic_version=topic.version,
            title=topic.title,
            created_at=record.created_at,
            metadata=ArticleMetadata(run_ids=[record.id]),
        )
        context = PipelineContext(
            run_id=record.id,
            kind=RunKind.GENERATE,
            topic=topic,
            collaborators=collaborators,
            options=options,
            article=article,
            to_run=to_run,
            timeout=options.stage_timeout or self.stage_timeout,
        )

        logger.info(f"[{record.id}] Starting article generation for {topic.key}")
        self._launch(context)
        return record.id

    async def regenerate(
        self,
        article_id: str,
        stages: Optional[Iterable[str]] = None,
        stage_timeout: Optional[float] = None,
    ) -> str:
        """Re-run a subset of stages for an existing article in a new run.

        Stages outside the requested set are recorded as skipped and their
        stored outputs are fed forward unchanged.

        Raises:
            NotFound: Unknown article
            InvalidRequest: Unknown stage name
            ConfigError: The article's topic version no longer loads
        """
        requested = parse_stages(stages)
        article = await asyncio.to_thread(self.article_store.get, article_id)
        topic = await self.topic_loader.load_topic(article.topic_id, article.topic_version)
        collaborators = self.collaborator_factory(topic)

        to_run = set(requested)
        if StageName.RESEARCH in to_run and not topic.research.enabled:
            to_run.discard(StageName.RESEARCH)
        to_run = frozenset(to_run)

        options = GenerationOptions(stage_timeout=stage_timeout)
        record = self._new_record(RunKind.REGENERATE, topic, options, to_run, article_id=article_id)
        await asyncio.to_thread(self.run_store.save, record)

        context = PipelineContext(
            run_id=record.id,
            kind=RunKind.REGENERATE,
            topic=topic,
            collaborators=collaborators,
            options=options,
            article=article,
            to_run=to_run,
            timeout=stage_timeout or self.stage_timeout,
        )

        logger.info(
            f"[{record.id}] Regenerating article {article_id} stages "
            f"{[s.value for s in PIPELINE_ORDER if s in to_run]}"
        )
        self._launch(context)
        return record.id

    def get_run(self, run_id: str) -> RunRecord:
        return self.run_store.get(run_id)

    def get_status(self, run_id: str) -> RunProgress:
        """Pure read of the persisted record."""
        return project_status(self.run_store.get(run_id))

    def cancel(self, run_id: str) -> RunRecord:
        """Mark a live run cancelled; later stages will not start.

        Raises:
            NotFound: Unknown run
            InvalidState: Run already terminal
        """

        def mutate(record: RunRecord) -> None:
            if record.is_terminal:
                raise InvalidState(f"Cannot cancel run in status: {record.status.value}")
            record.status = RunStatus.CANCELLED
            record.error = CANCELLED_BY_USER
            record.completed_at = utcnow()
            for stage in record.stages:
                if stage.status == StageStatus.PENDING:
                    stage.status = StageStatus.CANCELLED

        record = self.run_store.update(run_id, mutate)
        logger.info(f"[{run_id}] Run cancelled by user")
        return record

    async def wait_for_run(self, run_id: str, timeout: Optional[float] = None) -> RunRecord:
        """Wait until the run's background task settles, then return its record."""
        task = self._tasks.get(run_id)
        if task is not None:
            await asyncio.wait({task}, timeout=timeout)
        return await asyncio.to_thread(self.run_store.get, run_id)

    def recover_interrupted_runs(self) -> int:
        """Fail runs left live by a previous process.

        Completed stage records are kept, so callers can regenerate from the
        last good stage boundary.
        """
        recovered = 0
        for status in (RunStatus.PENDING, RunStatus.RUNNING):
            for record in self.run_store.list(RunFilter(status=status)):
                if record.id in self._tasks:
                    continue
                self.run_store.update(record.id, self._mark_interrupted)
                recovered += 1
                logger.warning(f"[{record.id}] Marked interrupted run as failed")
        return recovered

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Give in-flight runs a bounded grace period."""
        tasks = list(self._tasks.values())
        if not tasks:
            return
        timeout = timeout if timeout is not None else settings.SHUTDOWN_GRACE_SECONDS
        logger.info(f"Waiting up to {timeout}s for {len(tasks)} active runs")
        _done, pending = await asyncio.wait(tasks, timeout=timeout)
        if pending:
            logger.warning(f"{len(pending)} runs still active at shutdown; they will be recovered on restart")

    # Pipeline execution

    def _launch(self, context: PipelineContext) -> None:
        run_id = context.run_id
        task = asyncio.create_task(self._run_pipeline(context), name=f"run-{run_id}")
        self._tasks[run_id] = task

        def _done(finished: asyncio.Task) -> None:
            self._tasks.pop(run_id, None)
            if not finished.cancelled() and finished.exception() is not None:
                logger.error(f"[{run_id}] Pipeline task crashed", exc_info=finished.exception())

        task.add_done_callback(_done)

    async def _run_pipeline(self, context: PipelineContext) -> None:
        run_id = context.run_id
        try:
            for stage in PIPELINE_ORDER:
                if stage not in context.to_run:
                    self._carry_forward(context, stage)
                    continue

                handler: Callable[[PipelineContext], Awaitable[Any]] = getattr(self, STAGE_HANDLERS[stage])
                started = await self.execute_stage(run_id, stage, partial(handler, context), context.timeout)
                if not started:
                    logger.info(f"[{run_id}] Run no longer active, not starting {stage.value}")
                    return

            if context.kind == RunKind.REGENERATE and StageName.EXPORT not in context.to_run:
                context.article = await asyncio.to_thread(self._store_article, context)

            await self._finish(run_id, RunStatus.COMPLETED)
            logger.info(f"[{run_id}] Run completed successfully")

        except StageFailure as e:
            await self._finish(run_id, RunStatus.FAILED, error=e.message)
            logger.error(f"[{run_id}] Run failed at {e.stage}: {e.message}")

        except Exception as e:
            logger.error(f"[{run_id}] Orchestrator error: {e}", exc_info=True)
            try:
                await self._finish(run_id, RunStatus.FAILED, error=error_message(e))
            except Exception:
                logger.error(f"[{run_id}] Could not record run failure", exc_info=True)

    async def execute_stage(
        self,
        run_id: str,
        stage: StageName,
        stage_fn: Callable[[], Awaitable[Any]],
        timeout: Optional[float] = None,
    ) -> bool:
        """Run one stage with a timeout, persisting each transition.

        Returns False without invoking ``stage_fn`` when the run is no longer
        active. Raises StageFailure (or StageTimeout) after recording the
        stage as failed. Only the deadline produces StageTimeout; a
        TimeoutError raised by the collaborator itself is an ordinary failure.
        """
        timeout = timeout or self.stage_timeout
        if not await self._begin_stage(run_id, stage):
            return False

        logger.info(f"[{run_id}] Starting {stage.value} stage")
        task = asyncio.ensure_future(stage_fn())
        try:
            done, _pending = await asyncio.wait({task}, timeout=timeout)
        except asyncio.CancelledError:
            task.cancel()
            raise

        if not done:
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            failure = StageTimeout(stage.value, timeout)
        else:
            try:
                task.result()
            except StageFailure as e:
                failure = e
            except Exception as e:
                failure = StageFailure(stage.value, error_message(e), cause=e)
            else:
                await self._end_stage(run_id, stage, StageStatus.COMPLETED)
                logger.info(f"[{run_id}] Completed {stage.value} stage")
                return True

        logger.error(f"[{run_id}] Stage {stage.value} failed: {failure.message}", exc_info=failure.cause)
        await self._end_stage(run_id, stage, StageStatus.FAILED, error=failure.message)
        raise failure

    async def _begin_stage(self, run_id: str, stage: StageName) -> bool:
        started = False

        def mutate(record: RunRecord) -> Optional[bool]:
            nonlocal started
            stage_record = record.stage(stage)
            if record.is_terminal or stage_record.status != StageStatus.PENDING:
                return False
            stage_record.status = StageStatus.RUNNING
            stage_record.started_at = utcnow()
            record.status = RunStatus.RUNNING
            started = True
            return None

        await asyncio.to_thread(self.run_store.update, run_id, mutate)
        return started

    async def _end_stage(
        self, run_id: str, stage: StageName, status: StageStatus, error: Optional[str] = None
    ) -> None:
        def mutate(record: RunRecord) -> Optional[bool]:
            stage_record = record.stage(stage)
            if stage_record.status != StageStatus.RUNNING:
                return False
            stage_record.status = status
            stage_record.completed_at = utcnow()
            stage_record.error = error
            return None

        await asyncio.to_thread(self.run_store.update, run_id, mutate)

    async def _finish(self, run_id: str, status: RunStatus, error: Optional[str] = None) -> None:
        def mutate(record: RunRecord) -> Optional[bool]:
            if record.is_terminal:
                # Cancelled while the last stage was in flight
                return False
            record.status = status
            record.error = error
            record.completed_at = utcnow()
            for stage_record in record.stages:
                if stage_record.status == StageStatus.PENDING:
                    stage_record.status = StageStatus.CANCELLED
            return None

        await asyncio.to_thread(self.run_store.update, run_id, mutate)

    @staticmethod
    def _mark_interrupted(record: RunRecord) -> Optional[bool]:
        if record.is_terminal:
            return False
        now = utcnow()
        for stage_record in record.stages:
            if stage_record.status == StageStatus.RUNNING:
                stage_record.status = StageStatus.FAILED
                stage_record.completed_at = now
                stage_record.error = INTERRUPTED_BY_RESTART
            elif stage_record.status == StageStatus.PENDING:
                stage_record.status = StageStatus.CANCELLED
        record.status = RunStatus.FAILED
        record.error = INTERRUPTED_BY_RESTART
        record.completed_at = now
        return None

    def _new_record(
        self,
        kind: RunKind,
        topic: TopicConfig,
        options: GenerationOptions,
        to_run: FrozenSet[StageName],
        article_id: Optional[str] = None,
    ) -> RunRecord:
        now = utcnow()
        return RunRecord(
            id=str(uuid.uuid4()),
            kind=kind,
            topic_id=topic.id,
            topic_version=topic.version,
            status=RunStatus.RUNNING,
            stages=[
                StageRecord(name=name, status=StageStatus.PENDING if name in to_run else StageStatus.SKIPPED)
                for name in PIPELINE_ORDER
            ],
            options=options,
            article_id=article_id,
            created_at=now,
            updated_at=now,
        )

    # Stage bodies

    def _carry_forward(self, context: PipelineContext, stage: StageName) -> None:
        """Fill in what a skipped stage would have produced on a fresh run."""
        if context.kind != RunKind.GENERATE:
            return
        article = context.article
        if stage == StageName.REFINE and article.draft is not None:
            article.content = article.draft
            article.seo = basic_seo_metadata(context.topic, article.draft)

    async def _run_research(self, context: PipelineContext) -> None:
        result = await context.collaborators.research(context.topic)
        context.article.research = result
        context.article.citations = list(result.sources)
        context.article.metadata.models_used["research"] = context.topic.models.outline

    async def _run_outline(self, context: PipelineContext) -> None:
        result = await context.collaborators.outline(context.topic, context.article.research)
        context.article.outline = result
        context.article.title = result.title
        context.article.metadata.models_used["outline"] = context.topic.models.outline

    async def _run_draft(self, context: PipelineContext) -> None:
        if context.article.outline is None:
            raise ValueError("no outline available to draft from")
        result = await context.collaborators.draft(
            context.topic, context.article.outline, context.article.research
        )
        context.article.draft = result
        context.article.metadata.models_used["draft"] = context.topic.models.draft

    async def _run_refine(self, context: PipelineContext) -> None:
        if context.article.draft is None:
            raise ValueError("no draft available to refine")
        result = await context.collaborators.refine(
            context.topic, context.article.draft, list(context.article.citations)
        )
        context.article.content = result.content
        context.article.seo = result.seo
        context.article.metadata.models_used["refine"] = context.topic.models.refine

    async def _run_export(self, context: PipelineContext) -> None:
        if context.article.content is None:
            raise ValueError("no article content available to export")

        def publish(article: Article) -> None:
            article.status = "published"
            article.metadata.generation_time_ms = int((time.monotonic() - context.started) * 1000)
            if not context.options.dry_run and context.options.save_output:
                article.files = self.exporter.write_exports(article, context.topic.output)

        article = await asyncio.to_thread(self._store_article, context, publish)
        context.article = article

        def link(record: RunRecord) -> None:
            record.article_id = article.id

        await asyncio.to_thread(self.run_store.update, context.run_id, link)
        logger.info(f"[{context.run_id}] Article {article.id} stored with {len(article.files)} export files")

    def _store_article(
        self, context: PipelineContext, finalize: Optional[Callable[[Article], None]] = None
    ) -> Article:
        """Persist the run's article.

        A fresh run owns its whole article. A regeneration re-reads the stored
        article under its lock and writes back only the fields of the stages it
        ran, so concurrent regenerations of one article do not undo each other.
        ``finalize`` runs on the article about to be saved.
        """
        if context.kind == RunKind.GENERATE:
            article = context.article
            article.updated_at = utcnow()
            if finalize is not None:
                finalize(article)
            return self.article_store.save(article)

        produced = context.article

        def merge(stored: Article) -> None:
            for stage in context.to_run:
                if stage == StageName.EXPORT:
                    continue
                for name in STAGE_FIELDS[stage]:
                    setattr(stored, name, getattr(produced, name))
                model = produced.metadata.models_used.get(stage.value)
                if model:
                    stored.metadata.models_used[stage.value] = model
            if context.run_id not in stored.metadata.run_ids:
                stored.metadata.run_ids.append(context.run_id)
            stored.updated_at = utcnow()
            if finalize is not None:
                finalize(stored)

        return self.article_store.update(produced.id, merge)
