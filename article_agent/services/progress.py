"""Status projection for polling clients."""

from article_agent.schemas.run import RunProgress, RunRecord, RunStatus, StageStatus


def project_status(record: RunRecord) -> RunProgress:
    """Percent complete and current stage, derived purely from the record.

    Progress is completed stages over all stages, skipped ones included, so a
    run with research disabled reads 20 after its outline finishes. A
    completed run reads 100 even when some stages were skipped, and a run
    with no stages reads 0.
    """
    current = next((s.name for s in record.stages if s.status == StageStatus.RUNNING), None)

    if not record.stages:
        progress = 0
    elif record.status == RunStatus.COMPLETED:
        progress = 100
    else:
        completed = sum(1 for s in record.stages if s.status == StageStatus.COMPLETED)
        progress = round(100 * completed / len(record.stages))

    return RunProgress(
        run_id=record.id,
        status=record.status,
        current_stage=current,
        progress=max(0, min(100, progress)),
    )
