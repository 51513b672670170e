import io
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest import mock

import game

DICE = ["2,2,4,4,9,9", "6,8,1,1,8,6", "7,5,3,7,5,3"]


def run_main(args, answers=()):
    out, err = io.StringIO(), io.StringIO()
    # no answers left behaves like a closed stdin
    side_effect = list(answers) if answers else EOFError
    with mock.patch("builtins.input", side_effect=side_effect), \
            redirect_stdout(out), redirect_stderr(err):
        code = game.main(args)
    return code, out.getvalue(), err.getvalue()


class TestMain(unittest.TestCase):

    def test_help(self):
        for word in ("help", "HELP", "Help"):
            code, out, err = run_main([word])
            self.assertEqual(code, 0)
            self.assertIn("Usage:", out)
            self.assertNotIn("Welcome", out)

    def test_too_few_dice(self):
        code, out, err = run_main(DICE[:2])
        self.assertEqual(code, 1)
        self.assertIn("at least 3 dice", err)
        self.assertIn("Example usage", err)
        self.assertEqual(out, "")

    def test_malformed_fourth_die(self):
        code, out, err = run_main(DICE + ["abc"])
        self.assertEqual(code, 1)
        self.assertIn("Invalid die format 'abc'", err)
        self.assertNotIn("Welcome", out)

    def test_full_game(self):
        code, out, err = run_main(DICE, answers=["0", "1"])
        self.assertEqual(code, 0)
        self.assertIn("Welcome", out)
        body_rows = [line for line in out.splitlines() if line.startswith("| D")]
        self.assertEqual(len(body_rows), 3)
        for i, line in enumerate(body_rows):
            cells = [cell.strip() for cell in line.strip().strip("|").split("|")]
            self.assertEqual(len(cells), 4)
            self.assertEqual(cells[i + 1], "")
        self.assertTrue(
            "You win" in out or "The computer wins" in out or "It's a draw" in out
        )

    def test_quit_exits_cleanly(self):
        with self.assertRaises(SystemExit) as ctx:
            run_main(DICE, answers=["0", "x"])
        self.assertEqual(ctx.exception.code, 0)

    def test_end_of_input(self):
        code, out, err = run_main(DICE, answers=[])
        self.assertEqual(code, 0)
        self.assertIn("interrupted", out)

    def test_six_way_secret_space(self):
        code, out, err = run_main(["--secret-space=6"] + DICE, answers=["3", "1"])
        self.assertEqual(code, 0)
        self.assertIn("range 0..5", out)

    def test_unknown_option(self):
        code, out, err = run_main(["--turbo"] + DICE)
        self.assertEqual(code, 1)
        self.assertIn("Unknown option", err)


if __name__ == '__main__':
    unittest.main()
