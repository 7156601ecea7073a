import unittest

from gptxt.prompt_builder import (
    PREVIEW_MARKER,
    SYSTEM_PREAMBLE,
    Task,
    build_prompt,
    preview_block,
)


class PromptBuilderTests(unittest.TestCase):
    def test_build_is_deterministic(self) -> None:
        task = Task("count the words", preview_lines=2)
        data = "alpha beta\ngamma\ndelta"

        first = build_prompt(task, data)
        second = build_prompt(task, data)

        self.assertEqual(first, second)
        self.assertEqual(first.text, second.text)

    def test_preamble_names_input_and_result_variables(self) -> None:
        prompt = build_prompt(Task("reverse"), "abc")

        self.assertTrue(prompt.text.startswith(SYSTEM_PREAMBLE))
        self.assertIn("`data`", prompt.system)
        self.assertIn("`result`", prompt.system)

    def test_task_line_is_last(self) -> None:
        prompt = build_prompt(Task("uppercase each line", preview_lines=1), "a\nb")

        self.assertTrue(prompt.text.endswith("# uppercase each line:"))

    def test_no_preview_when_zero_lines_requested(self) -> None:
        prompt = build_prompt(Task("sum"), "1\n2\n3")

        self.assertNotIn(PREVIEW_MARKER, prompt.text)
        self.assertNotIn("First", prompt.body)

    def test_no_preview_for_empty_input(self) -> None:
        self.assertEqual(preview_block("", 5), "")
        prompt = build_prompt(Task("sum", preview_lines=3), "")
        self.assertEqual(prompt.body, "# sum:")

    def test_preview_shows_first_lines_in_order(self) -> None:
        block = preview_block("one\ntwo\nthree\nfour", 2)

        self.assertEqual(block, "# First 2 lines of `data`:\n#>one\n#>two")

    def test_preview_with_fewer_lines_than_requested(self) -> None:
        block = preview_block("x,y\n1,2\n", 10)
        lines = block.splitlines()

        self.assertEqual(lines[0], "# First 2 lines of `data`:")
        self.assertEqual(lines[1:], ["#>x,y", "#>1,2"])

    def test_messages_split_system_and_body(self) -> None:
        prompt = build_prompt(Task("trim"), "  a  ")
        messages = prompt.messages()

        self.assertEqual([m["role"] for m in messages], ["system", "user"])
        self.assertEqual(messages[0]["content"], SYSTEM_PREAMBLE)
        self.assertEqual(messages[1]["content"], prompt.body)

    def test_task_validation(self) -> None:
        with self.assertRaises(ValueError):
            Task("   ")
        with self.assertRaises(ValueError):
            Task("ok", preview_lines=-1)


if __name__ == "__main__":
    unittest.main()
