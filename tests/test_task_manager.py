# -*- coding: utf-8 -*-
"""
Task manager tests
"""
import json
from unittest.mock import MagicMock

import pytest

from taskpilot.task.enrichment import (
    ENRICHMENT_CODE,
    ENRICHMENT_REQUIREMENTS,
    WorkspaceContextProvider,
)
from taskpilot.task.exceptions import (
    DocumentReadError,
    EnrichmentError,
    MissingParameterError,
    StoreAccessError,
    TaskNotFoundError,
)
from taskpilot.task.extractor import ExtractedTask, RequirementsExtractor
from taskpilot.task.manager import TAG_CODE_TODO, TAG_REQUIREMENT, TAG_SUBTASK, TaskManager
from taskpilot.task.markdown import MarkdownMirror
from taskpilot.task.store import TaskStore, WorkspacePaths
from taskpilot.task.todo_scanner import TodoScanner
from taskpilot.task.types import TaskPriority, TaskStatus


@pytest.fixture
def paths(tmp_path):
    return WorkspacePaths.resolve(tmp_path)


@pytest.fixture
def manager(paths):
    return TaskManager(TaskStore(paths), mirror=MarkdownMirror(paths))


@pytest.fixture
def json_manager(paths):
    """No markdown mirrors"""
    return TaskManager(TaskStore(paths))


def _stored(paths):
    return json.loads(paths.tasks_json.read_text(encoding="utf-8"))


class TestInitialize:
    """Task tracking setup"""

    def test_creates_layout(self, manager, paths):
        result = manager.initialize()

        assert result.created is True
        assert _stored(paths) == {
            "name": "Project Tasks",
            "description": "Task collection for the project",
            "tasks": [],
        }
        assert (paths.tasks_dir / "README.md").read_text(encoding="utf-8").startswith("# Tasks Directory")

    def test_never_overwrites(self, manager, paths):
        manager.initialize()
        manager.create("Keep me")

        result = manager.initialize()

        assert result.created is False
        assert [t["title"] for t in _stored(paths)["tasks"]] == ["Keep me"]

    def test_readme_in_json_mode(self, json_manager, paths):
        json_manager.initialize()
        assert (paths.tasks_dir / "README.md").exists()

    def test_missing_workspace(self, tmp_path):
        manager = TaskManager(TaskStore(WorkspacePaths.resolve(tmp_path / "missing")))
        with pytest.raises(StoreAccessError) as exc_info:
            manager.initialize()
        assert exc_info.value.stage == StoreAccessError.STAGE_RESOLVE_PATHS

    def test_directory_blocked(self, manager, paths):
        paths.tasks_dir.write_text("a file, not a folder")
        with pytest.raises(StoreAccessError) as exc_info:
            manager.initialize()
        assert exc_info.value.stage == StoreAccessError.STAGE_CREATE_DIRECTORY


class TestCreateAndQuery:
    """Create, list and filter"""

    def test_create(self, manager, paths):
        task = manager.create("Add login page")

        assert task.id == "TASK-001"
        assert task.priority == TaskPriority.MEDIUM
        assert task.status == TaskStatus.TODO
        assert task.description == "Add login page"
        assert (paths.tasks_dir / "TASK-001.md").exists()

    def test_create_ids_continue(self, manager):
        manager.create("one")
        manager.create("two", priority=TaskPriority.HIGH)
        assert manager.create("three").id == "TASK-003"

    def test_default_priority(self, paths):
        manager = TaskManager(TaskStore(paths), default_priority=TaskPriority.LOW)
        assert manager.create("Anything").priority == TaskPriority.LOW

    def test_empty_title(self, manager):
        with pytest.raises(MissingParameterError):
            manager.create("   ")

    def test_mirror_failure_does_not_fail_create(self, manager, paths):
        """tasks.json is written even if the .md cannot be"""
        paths.tasks_dir.mkdir(parents=True)
        (paths.tasks_dir / "TASK-001.md").mkdir()

        task = manager.create("Still saved")

        assert [t["id"] for t in _stored(paths)["tasks"]] == [task.id]

    def test_list(self, manager):
        manager.create("low one", priority=TaskPriority.LOW)
        manager.create("critical one", priority=TaskPriority.CRITICAL)
        manager.create("high one", priority=TaskPriority.HIGH)
        manager.complete("TASK-003")

        listing = manager.list_tasks()
        assert [t.title for t in listing.open] == ["critical one", "low one"]
        assert [t.title for t in listing.completed] == ["high one"]

        assert manager.list_tasks(priority=TaskPriority.LOW).open[0].title == "low one"
        assert manager.list_tasks(completed=False).completed == []
        assert manager.list_tasks(status=TaskStatus.COMPLETED).open == []

    def test_tasks_by_priority(self, manager):
        manager.create("a", priority=TaskPriority.HIGH)
        manager.create("b", priority=TaskPriority.HIGH)
        manager.create("c", priority=TaskPriority.LOW)
        manager.complete("TASK-002")
        assert [t.id for t in manager.tasks_by_priority(TaskPriority.HIGH)] == ["TASK-001"]


class TestUpdates:
    """Complete, change priority, prioritize, recommend"""

    def test_complete(self, manager, paths):
        manager.create("Finish me")
        task = manager.complete("task-001")

        assert task.completed is True
        stored = _stored(paths)["tasks"][0]
        assert stored["status"] == "completed"
        assert stored["completedAt"]

    def test_complete_unknown_writes_nothing(self, manager, paths):
        manager.create("Only task")
        before = paths.tasks_json.read_bytes()

        with pytest.raises(TaskNotFoundError) as exc_info:
            manager.complete("TASK-999")

        assert str(exc_info.value) == "Task TASK-999 not found in your task collection"
        assert paths.tasks_json.read_bytes() == before

    def test_complete_without_id(self, manager):
        with pytest.raises(MissingParameterError):
            manager.complete(None)

    def test_change_priority(self, manager):
        manager.create("Tune queries")
        task, previous = manager.change_priority("TASK-001", TaskPriority.CRITICAL)
        assert previous == TaskPriority.MEDIUM
        assert task.priority == TaskPriority.CRITICAL

    def test_change_priority_invalid(self, manager):
        manager.create("Tune queries")
        with pytest.raises(MissingParameterError):
            manager.change_priority("TASK-001", None)

    def test_prioritize_idempotent(self, manager, paths):
        manager.create("low", priority=TaskPriority.LOW)
        manager.create("done", priority=TaskPriority.CRITICAL)
        manager.create("high", priority=TaskPriority.HIGH)
        manager.create("low two", priority=TaskPriority.LOW)
        manager.complete("TASK-002")

        ordered = manager.prioritize()
        first = paths.tasks_json.read_bytes()
        manager.prioritize()

        assert [t.title for t in ordered] == ["high", "low", "low two", "done"]
        assert paths.tasks_json.read_bytes() == first

    def test_recommend_next(self, manager):
        manager.create("a", priority=TaskPriority.MEDIUM)
        manager.create("b", priority=TaskPriority.HIGH)
        manager.create("c", priority=TaskPriority.HIGH)

        recommendation = manager.recommend_next()

        assert recommendation.task.id == "TASK-002"
        assert recommendation.same_priority_count == 1
        assert recommendation.open_count == 3
        assert recommendation.counts[TaskPriority.HIGH] == 2

    def test_recommend_nothing_open(self, manager):
        assert manager.recommend_next() is None
        manager.create("a")
        manager.complete("TASK-001")
        assert manager.recommend_next() is None


class TestExtraction:
    """TODO scanning and requirements parsing"""

    def test_scan_todos(self, manager, paths):
        src = paths.workspace_root / "src"
        src.mkdir()
        (src / "app.py").write_text("# TODO(high): validate input\nx = 1\n// TODO: not python but matched\n")

        result = manager.scan_todos(TodoScanner(paths.workspace_root), "**/*.py")

        assert result.files_scanned == 1
        assert [(t.id, t.priority, t.source.line) for t in result.tasks] == [
            ("TASK-001", TaskPriority.HIGH, 1),
            ("TASK-002", TaskPriority.MEDIUM, 3),
        ]
        task = result.tasks[0]
        assert task.description == "TODO from src/app.py:1"
        assert task.tags == [TAG_CODE_TODO]
        assert task.source.context == "todo"

    def test_scan_nothing_found(self, manager, paths):
        result = manager.scan_todos(TodoScanner(paths.workspace_root))
        assert result.tasks == []
        assert not paths.tasks_json.exists()

    def test_parse_requirements(self, manager, paths):
        (paths.workspace_root / "req.md").write_text("# Auth\n- [ ] Add password reset\nMUST: Lock accounts after 5 failures\n")

        created = manager.parse_requirements("req.md", RequirementsExtractor())

        assert [(t.title, t.priority) for t in created] == [
            ("Add password reset", TaskPriority.MEDIUM),
            ("Lock accounts after 5 failures", TaskPriority.CRITICAL),
        ]
        assert created[0].description == "Task created from requirements in req.md"
        assert created[0].tags == [TAG_REQUIREMENT]
        assert created[0].source.line == 2

    def test_parse_missing_document(self, manager):
        with pytest.raises(DocumentReadError):
            manager.parse_requirements("nope.md", RequirementsExtractor())

    def test_add_extracted_single_write(self, manager, paths):
        created = manager.add_extracted(
            [ExtractedTask("First requirement"), ExtractedTask("Second requirement", TaskPriority.LOW)],
            "docs/notes.md",
        )
        assert [t.id for t in created] == ["TASK-001", "TASK-002"]
        assert len(_stored(paths)["tasks"]) == 2


class TestDecomposeAndEnrich:
    """Model-backed operations"""

    def test_decompose(self, manager, paths):
        manager.create("Build checkout", priority=TaskPriority.HIGH)
        decomposer = MagicMock()
        decomposer.analyze.return_value = [
            ExtractedTask("Design cart model", TaskPriority.HIGH),
            ExtractedTask("Integrate payments", TaskPriority.CRITICAL),
        ]

        result = manager.decompose("TASK-001", decomposer)

        assert not result.atomic
        assert result.parent.subtasks == ["TASK-002", "TASK-003"]
        assert all(t.parent_task_id == "TASK-001" for t in result.subtasks)
        assert all(TAG_SUBTASK in t.tags for t in result.subtasks)
        stored = _stored(paths)["tasks"]
        assert stored[0]["subtasks"] == ["TASK-002", "TASK-003"]
        assert stored[2]["parentTaskId"] == "TASK-001"

    def test_decompose_atomic_writes_nothing(self, manager, paths):
        manager.create("Rename variable")
        before = paths.tasks_json.read_bytes()
        decomposer = MagicMock()
        decomposer.analyze.return_value = []

        result = manager.decompose("TASK-001", decomposer)

        assert result.atomic
        assert paths.tasks_json.read_bytes() == before

    def test_decompose_unknown(self, manager):
        with pytest.raises(TaskNotFoundError):
            manager.decompose("TASK-404", MagicMock())

    def test_enrich_code_context(self, manager, paths):
        lines = [f"line {n}" for n in range(1, 31)]
        (paths.workspace_root / "big.py").write_text("\n".join(lines[:14] + ["# TODO: tidy up"] + lines[15:]) + "\n")
        manager.scan_todos(TodoScanner(paths.workspace_root), "**/*.py")

        task = manager.enrich("TASK-001", WorkspaceContextProvider(paths.workspace_root))

        enriched = task.enriched_content
        assert enriched.enrichment_type == ENRICHMENT_CODE
        # no model: the description is kept
        assert enriched.enhanced_description == "TODO from big.py:15"
        context_lines = enriched.contextual_content.splitlines()
        assert context_lines[0] == " 5: line 5"
        assert context_lines[-1] == "25: line 25"
        assert "15: # TODO: tidy up" in context_lines
        assert _stored(paths)["tasks"][0]["enrichedContent"]["enrichmentType"] == ENRICHMENT_CODE

    def test_enrich_requirements_context(self, manager, paths):
        (paths.workspace_root / "req.md").write_text(
            "# Auth\n\n- [ ] Add password reset\n\n# Billing\n\n- [ ] Send invoices\n"
        )
        manager.parse_requirements("req.md", RequirementsExtractor())
        completion = MagicMock()
        completion.available = True
        completion.complete.return_value = "Email a one-time reset link."

        task = manager.enrich("TASK-001", WorkspaceContextProvider(paths.workspace_root, completion))

        assert task.enriched_content.enrichment_type == ENRICHMENT_REQUIREMENTS
        assert task.enriched_content.contextual_content == "# Auth\n\n- [ ] Add password reset"
        assert task.enriched_content.enhanced_description == "Email a one-time reset link."

    def test_enrich_without_source(self, manager):
        manager.create("Manual task")
        with pytest.raises(EnrichmentError):
            manager.enrich("TASK-001", WorkspaceContextProvider(manager.paths.workspace_root))


class TestExport:
    def test_default_target(self, manager, paths):
        manager.create("Export me")
        path = manager.export()
        assert path == paths.workspace_root / "tasks-export.md"
        assert "Export me" in path.read_text(encoding="utf-8")

    def test_explicit_target(self, manager, paths):
        manager.create("Export me")
        path = manager.export("json", "out/all.json")
        assert path == paths.workspace_root / "out" / "all.json"
        assert json.loads(path.read_text(encoding="utf-8"))["tasks"][0]["title"] == "Export me"

    def test_unknown_format(self, manager):
        with pytest.raises(ValueError):
            manager.export("xml")
