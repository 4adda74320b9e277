"""
Unit tests for board loading.

Tests parsing and validation of YAML board files without any chat turns.
"""

import tempfile
import unittest
from pathlib import Path

import yaml

from board_loader import board_from_dict, dump_board, load_board, validate_board
from workflow_engine import interpret

DEMO_BOARD = Path(__file__).parent.parent / "boards" / "demo.yaml"


class TestBoardFromDict(unittest.TestCase):
    """Test board construction from plain dictionaries."""

    def test_minimal_board(self):
        state = board_from_dict({'workflows': [{'name': 'Hiring'}]})

        self.assertEqual(len(state.workflows), 1)
        wf = state.workflows[0]
        self.assertEqual(wf.name, 'Hiring')
        self.assertEqual(wf.status, 'draft')
        self.assertEqual(wf.owner, 'Unassigned')
        self.assertEqual(len(wf.id), 21)
        self.assertIsNone(state.selected_workflow_id)

    def test_status_is_derived_from_steps(self):
        state = board_from_dict({'workflows': [{
            'name': 'Hiring',
            'status': 'draft',
            'steps': [
                {'title': 'Post job', 'status': 'done'},
                {'title': 'Interview', 'status': 'done'},
            ],
        }]})

        self.assertEqual(state.workflows[0].status, 'completed')

    def test_string_steps_are_pending(self):
        state = board_from_dict({'workflows': [{'name': 'Hiring', 'steps': ['Post job', 'Interview']}]})

        steps = state.workflows[0].steps
        self.assertEqual([s.title for s in steps], ['Post job', 'Interview'])
        self.assertEqual({s.status for s in steps}, {'pending'})

    def test_tags_are_normalized(self):
        state = board_from_dict({'workflows': [{'name': 'Hiring', 'tags': ['People', 'people', ' q3 ']}]})

        self.assertEqual(state.workflows[0].tags, frozenset({'people', 'q3'}))

    def test_selected_by_name(self):
        state = board_from_dict({
            'selected': 'hiring',
            'workflows': [{'name': 'Launch'}, {'name': 'Hiring'}],
        })

        self.assertEqual(state.selected.name, 'Hiring')

    def test_missing_name(self):
        with self.assertRaises(ValueError):
            board_from_dict({'workflows': [{'description': 'no name'}]})

    def test_invalid_step_status(self):
        with self.assertRaises(ValueError):
            board_from_dict({'workflows': [{'name': 'A', 'steps': [{'title': 'x', 'status': 'paused'}]}]})

    def test_unknown_selected(self):
        with self.assertRaises(ValueError):
            board_from_dict({'selected': 'Nope', 'workflows': [{'name': 'A'}]})

    def test_duplicate_ids(self):
        with self.assertRaises(ValueError):
            board_from_dict({'workflows': [{'id': 'x', 'name': 'A'}, {'id': 'x', 'name': 'B'}]})

    def test_workflows_must_be_list(self):
        with self.assertRaises(ValueError):
            board_from_dict({'workflows': {'name': 'A'}})


class TestLoadBoard(unittest.TestCase):
    """Test loading board files from disk."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)

    def write(self, text):
        path = Path(self.tmp.name) / "board.yaml"
        path.write_text(text, encoding='utf-8')
        return str(path)

    def test_demo_board(self):
        state = load_board(str(DEMO_BOARD))

        names = [wf.name for wf in state.workflows]
        self.assertEqual(names, ['Product Release QA', 'Customer Onboarding', 'Quarterly Planning'])
        self.assertEqual(state.selected.name, 'Product Release QA')
        self.assertEqual(state.workflows[0].status, 'active')
        self.assertEqual(state.workflows[2].status, 'draft')

    def test_demo_board_suggestion_runs(self):
        state = load_board(str(DEMO_BOARD))

        result = interpret(state, "run workflow Product Release QA")

        # Regression suite is already running
        self.assertEqual(result.intent, "no_change")
        self.assertIn("Run regression suite", result.reply)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_board(str(Path(self.tmp.name) / "missing.yaml"))

    def test_empty_file(self):
        state = load_board(self.write(""))

        self.assertEqual(state.workflows, ())

    def test_not_a_dictionary(self):
        with self.assertRaises(ValueError):
            load_board(self.write("- just\n- a list\n"))

    def test_bad_yaml(self):
        with self.assertRaises(yaml.YAMLError):
            load_board(self.write("workflows: [unclosed\n"))

    def test_dump_and_reload(self):
        state = load_board(str(DEMO_BOARD))

        reloaded = board_from_dict(yaml.safe_load(yaml.safe_dump(dump_board(state))))

        self.assertEqual(reloaded, state)


class TestValidateBoard(unittest.TestCase):
    """Test board warnings."""

    def test_demo_board_warnings(self):
        warnings = validate_board(load_board(str(DEMO_BOARD)))

        self.assertEqual(warnings, [])

    def test_warnings(self):
        state = board_from_dict({'workflows': [
            {'name': 'Hiring'},
            {'name': 'hiring', 'steps': [
                {'title': 'a', 'status': 'in-progress'},
                {'title': 'b', 'status': 'in-progress'},
            ]},
        ]})

        warnings = validate_board(state)

        self.assertIn("Duplicate workflow name: Hiring", warnings)
        self.assertIn("Workflow has no steps: Hiring", warnings)
        self.assertIn("Workflow has 2 steps in progress: hiring", warnings)
        self.assertTrue(any("No selected workflow" in w for w in warnings))


if __name__ == '__main__':
    unittest.main()
