"""Contract tests for task completion and stage tracking.

Each test pins one externally visible guarantee of the workflow: batches
are atomic, parents follow their children, ids match as whole tokens and
orphan subtasks are grouped under a synthesized parent.
"""

from spec_workflow.completion import BatchCompletionEngine, complete_batch
from spec_workflow.models import REASON_HAS_UNCOMPLETED_SUBTASKS, StageRecord
from spec_workflow.stages import current_stage
from spec_workflow.task_parser import parse_tasks


class RecordingEngine(BatchCompletionEngine):
    """Engine that remembers the order in which lines were checked."""

    def __init__(self):
        super().__init__()
        self.flipped = []

    def _flip_line(self, text, line_index, task_id):
        self.flipped.append(task_id)
        return super()._flip_line(text, line_index, task_id)


class TestBatchCompletionContract:
    """Guarantees of batch completion."""

    def test_completing_completed_tasks_changes_nothing(self):
        """Test that a batch of already completed ids leaves the text as it is."""
        document = "- [x] 1. A\n  - [x] 1.1 A1\n- [x] 2. B\n"

        result = complete_batch(document, ["1", "1.1", "2"])

        assert result.success is True
        assert result.updated_text == document
        assert result.completed == []
        assert result.already_completed == ["1", "1.1", "2"]

    def test_any_rejection_keeps_document(self):
        """Test that one blocked id keeps every other id from being applied."""
        document = "- [ ] 1. One\n- [ ] 2. Two\n  - [ ] 2.1 Sub\n"

        result = complete_batch(document, ["1", "2"])

        assert result.success is False
        assert result.updated_text == document
        assert result.completed == []
        assert result.rejection_reasons() == {"2": REASON_HAS_UNCOMPLETED_SUBTASKS}

    def test_parent_checked_when_all_children_are(self):
        """Test that completing every subtask checks the parent line."""
        document = "- [ ] 2. Root\n  - [ ] 2.1 A\n  - [ ] 2.2 B\n"

        result = complete_batch(document, ["2.1", "2.2"])

        assert result.updated_text == "- [x] 2. Root\n  - [x] 2.1 A\n  - [x] 2.2 B\n"
        assert result.auto_completed == ["2"]
        assert parse_tasks(result.updated_text)[0].completed is True

    def test_children_are_applied_before_their_parent(self):
        """Test that a parent and its open subtask in one batch both complete."""
        document = "- [ ] 2. Root\n  - [ ] 2.1 Only\n"
        engine = RecordingEngine()

        result = engine.complete(document, ["2", "2.1"])

        assert result.success is True
        assert result.updated_text == "- [x] 2. Root\n  - [x] 2.1 Only\n"
        assert result.completed == ["2.1", "2"]
        assert result.auto_completed == []
        assert engine.flipped == ["2.1", "2"]

    def test_id_prefix_does_not_match_longer_id(self):
        """Test that completing 1 never touches 11."""
        result = complete_batch("- [ ] 1. One\n- [ ] 11. Eleven\n", ["1"])

        assert result.updated_text == "- [x] 1. One\n- [ ] 11. Eleven\n"

    def test_id_prefix_does_not_match_when_longer_id_comes_first(self):
        """Test that line order does not matter for id matching."""
        result = complete_batch("- [ ] 11. Eleven\n- [ ] 1. One\n", ["1"])

        assert result.updated_text == "- [ ] 11. Eleven\n- [x] 1. One\n"

    def test_id_does_not_match_subtask_of_longer_root(self):
        """Test that 1 does not match 11.1."""
        result = complete_batch("- [ ] 11.1 Sub\n- [ ] 1. One\n", ["1"])

        assert result.updated_text == "- [ ] 11.1 Sub\n- [x] 1. One\n"


class TestParsingContract:
    """Guarantees of task list parsing."""

    def test_orphan_subtask_gets_synthetic_root(self):
        """Test that a lone subtask is grouped under a synthesized root."""
        forest = parse_tasks("- [ ] 15.1 Only child\n")

        assert len(forest) == 1
        assert forest[0].task_id == "15"
        assert forest[0].synthetic is True
        assert forest[0].title == "Task Group 15"
        assert [child.task_id for child in forest[0].children] == ["15.1"]


class TestScenarios:
    """End-to-end scenarios over plain text."""

    def test_completing_all_subtasks_completes_parent(self):
        """Test completing both subtasks of a single group."""
        document = "- [ ] 1. A\n- [ ] 1.1 A1\n- [ ] 1.2 A2\n"

        result = complete_batch(document, ["1.1", "1.2"])

        assert result.success is True
        assert result.updated_text == "- [x] 1. A\n- [x] 1.1 A1\n- [x] 1.2 A2\n"
        assert result.auto_completed == ["1"]
        assert result.next_task is None

    def test_parent_with_open_subtask_is_rejected(self):
        """Test that a parent cannot be completed over an open subtask."""
        document = "- [ ] 1. One\n- [ ] 2. Two\n  - [ ] 2.1 Sub\n"

        result = complete_batch(document, ["2"])

        assert result.success is False
        assert result.rejected[0].task_id == "2"
        assert result.rejected[0].reason == REASON_HAS_UNCOMPLETED_SUBTASKS
        assert result.updated_text == document

    def test_stage_after_confirmed_requirements(self):
        """Test that design follows confirmed requirements."""
        record = StageRecord(
            confirmed={"requirements": True, "design": False, "tasks": False},
            skipped={"requirements": False, "design": False, "tasks": False},
        )

        assert current_stage(record) == "design"
