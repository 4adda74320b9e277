"""
Tests for the flowbot command line in scripted (--command) mode.
"""

import io
import json
import unittest
from contextlib import redirect_stdout
from pathlib import Path

import flowbot

DEMO_BOARD = Path(__file__).parent.parent / "boards" / "demo.yaml"


class TestFlowbotCli(unittest.TestCase):

    def run_cli(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out):
            flowbot.main(list(argv))
        return out.getvalue()

    def test_scripted_commands_with_json(self):
        output = self.run_cli(
            "--command", "create workflow Launch Campaign",
            "--command", "add step to Launch Campaign: Prepare email sequence",
            "--command", "run workflow Launch Campaign",
            "--json",
        )

        self.assertIn('flowbot> Running "Launch Campaign"', output)
        board = json.loads(output[output.index("{"):])
        self.assertEqual(board["selected"], "Launch Campaign")
        step = board["workflows"][0]["steps"][0]
        self.assertEqual(step["title"], "Prepare email sequence")
        self.assertEqual(step["status"], "in-progress")

    def test_board_option(self):
        output = self.run_cli("--board", str(DEMO_BOARD), "-c", "list workflows")

        self.assertIn("Customer Onboarding: active, 2/3 steps done", output)

    def test_missing_board_exits(self):
        with self.assertRaises(SystemExit) as ctx:
            self.run_cli("--board", "no/such/board.yaml", "-c", "list")

        self.assertEqual(ctx.exception.code, 1)


if __name__ == '__main__':
    unittest.main()
