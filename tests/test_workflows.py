"""
Tests for workflow orchestration through the lifecycle engine
"""
import asyncio

import pytest

from buzzcraft.engine import LifecycleEngine
from buzzcraft.observability import get_metrics_registry
from buzzcraft.state.exceptions import FailureKind, ValidationError, WorkflowError, WorkflowTimeoutError
from buzzcraft.state.lifecycle import ProjectState, TransitionType
from buzzcraft.systems.manifest import ManifestError, ManifestStore
from buzzcraft.transitions import TRANSITION_CLASSES
from buzzcraft.transitions.save import SaveTransition
from buzzcraft.workflows import SaveWorkflow, execute_build_workflow, execute_save_workflow, workflow_for
from buzzcraft.workflows.locks import DEFAULT_LOCKS, ProjectLockRegistry
from buzzcraft.workflows.stop import stopped_services

from conftest import StubProbe


def _payload(transition: TransitionType, path: str) -> dict:
    return {
        TransitionType.SAVE: {"projectPath": path, "content": "<h1>Hi</h1>"},
        TransitionType.BUILD: {"projectPath": path, "target": "web", "environment": "production"},
        TransitionType.EDIT: {"projectPath": path, "editConfig": {"editMode": "full"}},
        TransitionType.DEPLOY: {"projectPath": path, "target": "docker", "environment": "staging"},
        TransitionType.START: {"projectPath": path, "deploymentId": "d1"},
        TransitionType.STOP: {"projectPath": path, "deploymentId": "d1", "graceful": True},
        TransitionType.UPDATE: {"projectPath": path, "deploymentId": "d1", "updateType": "minor", "version": "1.1.0"},
    }[transition]


def _counting(transition: TransitionType):
    """Transition whose actor counts its calls."""

    class Counting(TRANSITION_CLASSES[transition]):
        def __init__(self):
            super().__init__()
            self.acted = 0

        async def act(self, project_id, context):
            self.acted += 1
            return await super().act(project_id, context)

    return Counting()


class SlowProbe(StubProbe):
    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay
        self.active = 0
        self.max_active = 0

    async def project_exists(self, project_id):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            return await super().project_exists(project_id)
        finally:
            self.active -= 1


class FailingProbe(StubProbe):
    async def project_exists(self, project_id):
        raise RuntimeError("disk on fire")


class BrokenCommitStore(ManifestStore):
    async def commit(self, record, evidence_path):
        raise ManifestError("Écriture du manifeste impossible")


class NoopCommitStore(ManifestStore):
    async def commit(self, record, evidence_path):
        return {}


class SlowReadStore(ManifestStore):
    """Manifest store whose reads linger, counting how many overlap."""

    def __init__(self, delay: float):
        super().__init__()
        self.delay = delay
        self.active = 0
        self.max_active = 0

    async def read(self, evidence_path):
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
            return await super().read(evidence_path)
        finally:
            self.active -= 1


# ----------------------------------------------------------------------
# Happy paths
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_save_happy_path(engine, make_project, read_manifest, sink):
    path = make_project("p1", ProjectState.DRAFT)

    result = await engine.save("p1", {"projectPath": path, "content": "<h1>Hi</h1>"})

    assert result.success is True
    assert result.final_state == ProjectState.DRAFT
    assert result.transition_type == "SAVE"
    assert result.correlation_id.startswith("save-p1-")
    assert result.checks["success"] is True
    assert result.transition.context["saveData"]["version"] == "auto"
    assert result.transition.context["saveData"]["commitMessage"] == "Auto save"

    manifest = read_manifest(path)
    assert manifest["state"] == "DRAFT"
    assert manifest["lastTransition"]["transition"] == "SAVE"
    assert len(manifest["history"]) == 1


@pytest.mark.asyncio
async def test_step_order_and_events(engine, make_project, sink):
    path = make_project("p1", ProjectState.DRAFT)

    result = await engine.save("p1", {"projectPath": path, "changes": ["title"]})

    assert [step.name for step in result.metrics.steps] == [
        "detect-draft-state",
        "validate-save-transition",
        "filesystem-checks",
        "execute-save-transition",
        "verify-draft-state",
        "cleanup-transition",
    ]
    assert all(step.success for step in result.metrics.steps)
    assert result.metrics.success is True
    assert sink.event_types == [
        "workflow-start",
        "validation-start",
        "filesystem-checks-start",
        "transition-start",
        "verification-start",
        "workflow-success",
    ]
    assert sink.find("workflow-success")["saveId"] == result.correlation_id


@pytest.mark.asyncio
async def test_full_lifecycle(engine, make_project, read_manifest):
    """A project travels DRAFT -> BUILT -> DRAFT -> BUILT -> OFFLINE -> ONLINE -> OFFLINE -> OFFLINE."""
    path = make_project("p1", ProjectState.DRAFT)

    await engine.build("p1", _payload(TransitionType.BUILD, path))
    edited = await engine.edit("p1", _payload(TransitionType.EDIT, path))
    await engine.build("p1", _payload(TransitionType.BUILD, path))
    deployed = await engine.deploy("p1", _payload(TransitionType.DEPLOY, path))
    started = await engine.start("p1", _payload(TransitionType.START, path))
    stopped = await engine.stop("p1", _payload(TransitionType.STOP, path))
    updated = await engine.update("p1", _payload(TransitionType.UPDATE, path))

    assert edited.final_state == ProjectState.DRAFT
    assert edited.transition.context["backupCreated"] is True
    assert deployed.final_state == ProjectState.OFFLINE
    assert deployed.transition.context["deployConfig"]["port"] == 8080
    assert started.final_state == ProjectState.ONLINE
    assert started.correlation_id.startswith("service-p1-")
    assert stopped.final_state == ProjectState.OFFLINE
    assert updated.final_state == ProjectState.OFFLINE

    manifest = read_manifest(path)
    assert manifest["state"] == "OFFLINE"
    assert [entry["transition"] for entry in manifest["history"]] == [
        "BUILD", "EDIT", "BUILD", "DEPLOY", "START", "STOP", "UPDATE",
    ]
    assert (await engine.current_state(path)).state == ProjectState.OFFLINE
    assert await engine.available_transitions(path) == {TransitionType.START, TransitionType.UPDATE}


@pytest.mark.asyncio
async def test_stop_reports_stopped_services(engine, make_project, sink):
    path = make_project("p1", ProjectState.ONLINE)

    result = await engine.stop("p1", {"projectPath": path, "deploymentId": "d1"})

    assert result.correlation_id == ["web-service-p1", "api-service-p1", "connections-drained-p1"]
    assert sink.find("workflow-success")["stoppedServices"] == result.correlation_id


def test_stopped_services_without_graceful_shutdown():
    assert stopped_services("p1", {"graceful": False, "drainConnections": False}) == ["force-stopped-p1"]


@pytest.mark.asyncio
async def test_update_announces_backup(engine, make_project, read_manifest, sink):
    path = make_project("p1", ProjectState.OFFLINE)

    result = await engine.update("p1", _payload(TransitionType.UPDATE, path))

    assert result.final_state == ProjectState.OFFLINE
    assert result.correlation_id.startswith("update-p1-")
    assert result.details == {"backupId": f"backup-{result.correlation_id}"}
    assert [step.name for step in result.metrics.steps] == [
        "detect-offline-state",
        "validate-update-transition",
        "filesystem-checks",
        "create-backup",
        "execute-update-transition",
        "verify-offline-state",
        "cleanup-transition",
    ]
    assert sink.find("backup-creation") == {"workflow": "update", "projectId": "p1", "backupId": result.details["backupId"]}
    assert sink.find("workflow-success")["backupId"] == result.details["backupId"]
    assert result.transition.context["updateConfig"]["version"] == "1.1.0"
    assert read_manifest(path)["lastTransition"]["transition"] == "UPDATE"


@pytest.mark.asyncio
async def test_update_without_backup(engine, make_project, sink):
    path = make_project("p1", ProjectState.OFFLINE)
    payload = {**_payload(TransitionType.UPDATE, path), "createBackup": False}

    result = await engine.update("p1", payload)

    assert result.details == {"backupId": None}
    assert "create-backup" not in [step.name for step in result.metrics.steps]
    assert sink.find("backup-creation") is None
    assert result.transition.context["backupCreated"] is False


@pytest.mark.asyncio
async def test_update_requires_update_type(engine):
    with pytest.raises(ValidationError, match="updateConfig.updateType requis"):
        await engine.update("p1", {"projectPath": "/x", "deploymentId": "d1"})


@pytest.mark.asyncio
async def test_module_level_entry_point(config, make_project, store, sink):
    path = make_project("p1", ProjectState.DRAFT)

    result = await execute_build_workflow(
        "p1", _payload(TransitionType.BUILD, path), config=config, store=store, sink=sink
    )

    assert result.final_state == ProjectState.BUILT


# ----------------------------------------------------------------------
# Failures
# ----------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize("transition", list(TransitionType))
async def test_wrong_source_state_never_reaches_actor(transition, config, store, sink, make_project):
    path = make_project("p1", state=None)
    spy = _counting(transition)
    workflow = workflow_for(transition, config=config, store=store, sink=sink, transition=spy)

    with pytest.raises(WorkflowError) as exc_info:
        await workflow.run("p1", _payload(transition, path))

    assert exc_info.value.kind == FailureKind.STATE_MISMATCH
    assert "n'est pas en état" in str(exc_info.value)
    assert spy.acted == 0


@pytest.mark.asyncio
async def test_state_mismatch_events_and_manifest_untouched(engine, make_project, read_manifest, sink):
    path = make_project("p1", ProjectState.BUILT)

    with pytest.raises(WorkflowError, match="Projet n'est pas en état DRAFT"):
        await engine.save("p1", {"projectPath": path, "content": "x" * 500})

    assert read_manifest(path)["state"] == "BUILT"
    assert sink.event_types == ["workflow-start", "workflow-error", "recovery-start", "recovery-complete"]
    assert sink.find("workflow-start")["saveData"]["contentSize"] == 500
    assert sink.find("recovery-complete")["strategy"] == "state-conflict"


@pytest.mark.asyncio
async def test_missing_requirements(config, store, sink, make_project):
    class StrictSave(SaveTransition):
        required_fields = ("projectId", "saveData", "projectPath", "author")

    path = make_project("p1", ProjectState.DRAFT)
    workflow = SaveWorkflow(config=config, store=store, sink=sink, transition=StrictSave())

    with pytest.raises(WorkflowError) as exc_info:
        await workflow.run("p1", {"projectPath": path, "content": "hi"})

    error = exc_info.value
    assert error.kind == FailureKind.MISSING_REQUIREMENTS
    assert error.requirements == ["author manquant"]
    assert str(error) == "WorkflowError: Validation échec: author manquant"
    assert sink.find("recovery-complete")["strategy"] == "validation-failure"


@pytest.mark.asyncio
async def test_project_missing(config, store, sink, make_project):
    path = make_project("p1", ProjectState.DRAFT)
    engine = LifecycleEngine(config, store=store, sink=sink, probe=StubProbe(exists=False))

    with pytest.raises(WorkflowError) as exc_info:
        await engine.save("p1", {"projectPath": path, "content": "hi"})

    assert exc_info.value.kind == FailureKind.PROJECT_MISSING
    assert str(exc_info.value) == "WorkflowError: Projet p1 inexistant"


@pytest.mark.asyncio
async def test_output_path_not_writable(config, store, sink, make_project, read_manifest):
    path = make_project("p1", ProjectState.DRAFT)
    probe = StubProbe(writable=False)
    engine = LifecycleEngine(config, store=store, sink=sink, probe=probe)

    with pytest.raises(WorkflowError) as exc_info:
        await engine.build("p1", _payload(TransitionType.BUILD, path))

    assert exc_info.value.kind == FailureKind.PATH_NOT_WRITABLE
    assert f"Chemin {path} non accessible en écriture" in str(exc_info.value)
    assert probe.calls == [("project_exists", "p1"), ("check_output_path", path)]
    assert read_manifest(path)["state"] == "DRAFT"
    assert sink.find("recovery-complete")["strategy"] == "filesystem-failure"


@pytest.mark.asyncio
async def test_commit_failure_is_action_failure(config, sink, make_project):
    path = make_project("p1", ProjectState.DRAFT)
    engine = LifecycleEngine(config, store=BrokenCommitStore(), sink=sink)

    with pytest.raises(WorkflowError) as exc_info:
        await engine.build("p1", _payload(TransitionType.BUILD, path))

    assert exc_info.value.kind == FailureKind.ACTION_FAILED
    assert str(exc_info.value) == "WorkflowError: Transition BUILD échouée"
    assert isinstance(exc_info.value.__cause__, ManifestError)


@pytest.mark.asyncio
async def test_unconfirmed_final_state(config, sink, make_project):
    path = make_project("p1", ProjectState.DRAFT)
    engine = LifecycleEngine(config, store=NoopCommitStore(), sink=sink)

    with pytest.raises(WorkflowError) as exc_info:
        await engine.build("p1", _payload(TransitionType.BUILD, path))

    assert exc_info.value.kind == FailureKind.POSTCONDITION_FAILED
    assert str(exc_info.value) == "WorkflowError: État final n'est pas BUILT valide"


@pytest.mark.asyncio
async def test_step_timeout(config, store, sink, make_project):
    path = make_project("p1", ProjectState.DRAFT)
    engine = LifecycleEngine(config, store=store, sink=sink, probe=SlowProbe(delay=2.0))

    with pytest.raises(WorkflowTimeoutError) as exc_info:
        await engine.save("p1", {"projectPath": path, "content": "hi"}, {"timeout": 0.25})

    assert exc_info.value.kind == FailureKind.TIMEOUT
    assert exc_info.value.step == "filesystem-checks"
    assert sink.find("recovery-complete")["strategy"] == "timeout"
    metrics = sink.find("workflow-error")["metrics"]
    assert metrics["steps"][-1]["name"] == "filesystem-checks"
    assert metrics["steps"][-1]["success"] is False


@pytest.mark.asyncio
async def test_foreign_error_is_wrapped(config, store, sink, make_project):
    path = make_project("p1", ProjectState.DRAFT)
    engine = LifecycleEngine(config, store=store, sink=sink, probe=FailingProbe())

    with pytest.raises(WorkflowError) as exc_info:
        await engine.save("p1", {"projectPath": path, "content": "hi"})

    assert exc_info.value.kind == FailureKind.UNKNOWN
    assert isinstance(exc_info.value.__cause__, RuntimeError)
    assert sink.find("recovery-complete")["strategy"] == "unknown-error"


@pytest.mark.asyncio
async def test_cleanup_failure_does_not_abort(config, store, sink, make_project, read_manifest):
    class BrokenCleanup(SaveTransition):
        async def cleanup(self, record, project_id, now=None):
            raise RuntimeError("cleanup exploded")

    path = make_project("p1", ProjectState.DRAFT)
    workflow = SaveWorkflow(config=config, store=store, sink=sink, transition=BrokenCleanup())

    result = await workflow.run("p1", {"projectPath": path, "content": "hi"})

    assert result.success is True
    assert result.metrics.steps[-1].name == "cleanup-transition"
    assert result.metrics.steps[-1].success is False
    assert read_manifest(path)["lastTransition"]["transition"] == "SAVE"


# ----------------------------------------------------------------------
# Input validation
# ----------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "project_id, payload, options, message",
    [
        ("", {"projectPath": "/x", "content": "hi"}, None, "projectId requis string"),
        ("p1", None, None, "saveData requis object"),
        ("p1", {"content": "hi"}, None, "saveData.projectPath requis"),
        ("p1", {"projectPath": "/x"}, None, "saveData.content ou saveData.changes requis"),
        ("p1", {"projectPath": "/x", "content": "hi"}, "fast", "options requis object"),
        ("p1", {"projectPath": "/x", "content": "hi"}, {"timeout": -1}, "options invalides"),
    ],
)
async def test_save_input_validation(engine, sink, project_id, payload, options, message):
    with pytest.raises(ValidationError, match=message):
        await engine.save(project_id, payload, options)

    assert sink.events == []


@pytest.mark.asyncio
async def test_edit_requires_config_mapping(engine):
    with pytest.raises(ValidationError, match="editOptions.editConfig requis object"):
        await engine.edit("p1", {"projectPath": "/x", "editConfig": "full"})


@pytest.mark.asyncio
async def test_stop_requires_deployment_id(engine):
    with pytest.raises(ValidationError, match="stopConfig.deploymentId requis"):
        await engine.stop("p1", {"projectPath": "/x"})


# ----------------------------------------------------------------------
# Concurrency and metrics
# ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_runs_on_one_project_are_serialized(config, store, sink, make_project):
    path = make_project("p1", ProjectState.DRAFT)
    probe = SlowProbe(delay=0.02)
    engine = LifecycleEngine(config, store=store, sink=sink, probe=probe)

    results = await asyncio.gather(
        engine.save("p1", {"projectPath": path, "content": "a"}),
        engine.save("p1", {"projectPath": path, "content": "b"}),
    )

    assert all(result.success for result in results)
    assert probe.max_active == 1
    assert len(engine.locks) == 0


@pytest.mark.asyncio
async def test_workflows_share_engine_collaborators(engine):
    save = engine.workflow("SAVE")

    assert save is engine.workflow(TransitionType.SAVE)
    assert save.locks is engine.workflow(TransitionType.STOP).locks


@pytest.mark.asyncio
async def test_module_entry_points_serialize_one_project(config, sink, make_project, read_manifest):
    path = make_project("p1", ProjectState.DRAFT)
    slow_store = SlowReadStore(delay=0.02)

    built, saved = await asyncio.gather(
        execute_build_workflow("p1", _payload(TransitionType.BUILD, path), config=config, store=slow_store, sink=sink),
        execute_save_workflow("p1", _payload(TransitionType.SAVE, path), config=config, store=slow_store, sink=sink),
        return_exceptions=True,
    )

    assert slow_store.max_active == 1
    assert built.success is True
    assert isinstance(saved, WorkflowError)
    assert saved.kind == FailureKind.STATE_MISMATCH
    assert read_manifest(path)["state"] == "BUILT"
    assert len(DEFAULT_LOCKS) == 0


def test_default_lock_registry(config):
    own = ProjectLockRegistry()

    assert SaveWorkflow().locks is DEFAULT_LOCKS
    assert LifecycleEngine(config).locks is DEFAULT_LOCKS
    assert LifecycleEngine(config, locks=own).workflow("BUILD").locks is own
    assert workflow_for("STOP", locks=own).locks is own


@pytest.mark.asyncio
async def test_outcome_counters(engine, make_project):
    registry = get_metrics_registry()
    labels = {"transition": "DEPLOY", "outcome": "success"}
    before = registry.get_sample_value("buzzcraft_workflows_total", labels) or 0
    path = make_project("p1", ProjectState.BUILT)

    await engine.deploy("p1", _payload(TransitionType.DEPLOY, path))

    assert registry.get_sample_value("buzzcraft_workflows_total", labels) == before + 1
    assert registry.get_sample_value("buzzcraft_workflows_active") == 0
