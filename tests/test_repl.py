import io
import tempfile
import unittest
from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path

from ezfuck import EzfuckSyntaxError, PointerUnderflow, ReplSession
from ezfuck.cli import main as cli_main
from ezfuck.debugger import DebugView
from ezfuck.compiler import compile_source
from ezfuck.repl import TerminalConsole, format_tape, format_view, run_repl, stdin_bytes

HELLO_WORLD = (
    "+8[>+4[>+2>+3>+3>+<4-]>+>+>->2+[<]<-]>2.>-3.+7..+3.>2.<-.<.+3.-6.-8.>2+.>+2."
)


class FormatTapeTests(unittest.TestCase):
    def test_renders_rows_up_to_last_nonzero_cell(self) -> None:
        rendered = format_tape([72, 0, 5, 0, 0], 1).splitlines()
        self.assertEqual(len(rendered), 4)
        self.assertEqual(rendered[0], "  " + "      " + "   V  " + "      ")
        self.assertEqual(rendered[1], "i | 000 | 001 | 002 |")
        self.assertEqual(rendered[2], "d | 072 | 000 | 005 |")
        self.assertEqual(rendered[3], "a |  H  |     |     |")

    def test_extends_to_pointer(self) -> None:
        rendered = format_tape([0, 0, 0], 2).splitlines()
        self.assertEqual(rendered[1], "i | 000 | 001 | 002 |")

    def test_single_zero_cell(self) -> None:
        rendered = format_tape([0], 0).splitlines()
        self.assertEqual(rendered[2], "d | 000 |")

    def test_format_view_marks_pc(self) -> None:
        program = compile_source("+2!+3")
        view = DebugView(
            tape=[2],
            pointer=0,
            pc=2,
            listing=[(index, program[index]) for index in range(3)],
        )
        rendered = format_view(view)
        self.assertIn("2 > cell += 3", rendered)
        self.assertIn("1   toggle debug", rendered)


class ReplSessionTests(unittest.TestCase):
    def test_state_persists_between_lines(self) -> None:
        session = ReplSession()
        self.assertEqual(session.submit("+5"), "")
        session.submit("+V")
        self.assertEqual(session.state.tape, [10])

    def test_submit_returns_line_output(self) -> None:
        session = ReplSession()
        self.assertEqual(session.submit("^72."), "H")
        self.assertEqual(session.submit("+33."), "i")

    def test_syntax_error_leaves_state_untouched(self) -> None:
        session = ReplSession()
        session.submit("+3")
        with self.assertRaises(EzfuckSyntaxError):
            session.submit("+[")
        self.assertEqual(session.state.tape, [3])

    def test_pointer_underflow_keeps_partial_effects(self) -> None:
        session = ReplSession()
        with self.assertRaises(PointerUnderflow):
            session.submit("+2<")
        self.assertEqual(session.state.tape, [2])
        self.assertEqual(session.state.instruction_pointer, 0)
        session.submit("+")
        self.assertEqual(session.state.tape, [3])

    def test_each_line_starts_outside_debug_mode(self) -> None:
        session = ReplSession()
        session.submit("+!")
        self.assertFalse(session.state.debugging)


class RunReplTests(unittest.TestCase):
    def run_lines(self, text: str) -> str:
        stdout = io.StringIO()
        run_repl(stdin=io.StringIO(text), stdout=stdout)
        return stdout.getvalue()

    def test_line_output_and_exit(self) -> None:
        output = self.run_lines("+65.\n!\n")
        self.assertIn("Output: A", output)
        self.assertIn("| 065 |", output)
        self.assertEqual(output.count("EZ> "), 2)

    def test_end_of_input_ends_session(self) -> None:
        output = self.run_lines("+1\n")
        self.assertEqual(output.count("EZ> "), 2)

    def test_errors_are_reported_and_session_continues(self) -> None:
        output = self.run_lines("[\n+2\n!\n")
        self.assertIn("Error:", output)
        self.assertIn("| 002 |", output)

    def test_debugger_injection_from_terminal(self) -> None:
        output = self.run_lines("+1!+2\n+3\n!\n")
        self.assertIn("> cell += 2", output)
        self.assertIn("| 006 |", output)

    def test_input_is_read_from_the_same_stream(self) -> None:
        output = self.run_lines(",.\nZ!\n")
        self.assertIn("Output: Z", output)


class TerminalConsoleTests(unittest.TestCase):
    def test_eof_leaves_debug_mode(self) -> None:
        console = TerminalConsole(io.StringIO(""), io.StringIO())
        view = DebugView(tape=[0], pointer=0, pc=0, listing=[])
        self.assertEqual(console.read_submission(view), "!")

    def test_stdin_bytes_encodes_utf8(self) -> None:
        self.assertEqual(list(stdin_bytes(io.StringIO("Aé"))), [65, 0xC3, 0xA9])


class CliTests(unittest.TestCase):
    def run_cli(self, source: str, *args: str):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "program.ez"
            path.write_text(source, encoding="utf-8")
            stdout = io.StringIO()
            stderr = io.StringIO()
            with redirect_stdout(stdout), redirect_stderr(stderr):
                code = cli_main([str(path), *args])
        return code, stdout.getvalue(), stderr.getvalue()

    def test_runs_hello_world(self) -> None:
        code, out, _ = self.run_cli(HELLO_WORLD, "--input", "")
        self.assertEqual(code, 0)
        self.assertEqual(out, "Hello World!\n")

    def test_input_option(self) -> None:
        code, out, _ = self.run_cli(",+.", "--input", "a")
        self.assertEqual(code, 0)
        self.assertEqual(out, "b")

    def test_brainfuck_dialect(self) -> None:
        source = "+" * 64 + "+5."
        _, ezfuck_out, _ = self.run_cli(source, "--input", "")
        _, brainfuck_out, _ = self.run_cli(source, "--input", "", "--brainfuck")
        self.assertEqual(ezfuck_out, "E")
        self.assertEqual(brainfuck_out, "A")

    def test_dump_listing(self) -> None:
        code, out, _ = self.run_cli("+[-]", "--dump")
        self.assertEqual(code, 0)
        self.assertIn("1   jump to 4 if cell == 0", out)

    def test_syntax_error_exit_code(self) -> None:
        code, _, err = self.run_cli("+]")
        self.assertEqual(code, 1)
        self.assertIn("Syntax error", err)

    def test_oversized_argument_exit_code(self) -> None:
        code, _, err = self.run_cli("+" + "9" * 5000)
        self.assertEqual(code, 1)
        self.assertIn("Syntax error", err)

    def test_runtime_error_exit_code(self) -> None:
        code, _, err = self.run_cli("<", "--input", "")
        self.assertEqual(code, 1)
        self.assertIn("Runtime error", err)

    def test_step_limit(self) -> None:
        code, _, err = self.run_cli("+[]", "--input", "", "--max-steps", "50")
        self.assertEqual(code, 1)
        self.assertIn("step count", err)

    def test_missing_file(self) -> None:
        stderr = io.StringIO()
        with redirect_stderr(stderr):
            code = cli_main(["/nonexistent/program.ez"])
        self.assertEqual(code, 1)
        self.assertIn("Source file not found", stderr.getvalue())


if __name__ == "__main__":
    unittest.main()
