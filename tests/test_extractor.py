"""
Agent Core — Tool Call Extraction Tests
"""

import os
import sys
import unittest

_base = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, _base)

from agentcore.extractor import ToolCall, extract_tool_calls, format_tool_result


class TestExtractToolCalls(unittest.TestCase):

    def test_empty_input(self):
        self.assertEqual(extract_tool_calls(""), [])
        self.assertEqual(extract_tool_calls(None), [])

    def test_no_tool_blocks(self):
        self.assertEqual(extract_tool_calls("The task is complete."), [])

    def test_single_call_with_inner_params(self):
        text = """I'll read the file.
<tool name="filesystem" action="read">
  <path>src/app.py</path>
</tool>"""
        calls = extract_tool_calls(text)
        self.assertEqual(calls, [ToolCall("filesystem", "read", {"path": "src/app.py"})])

    def test_attributes_become_params(self):
        calls = extract_tool_calls('<tool name="shell" action="run" command="ls -la"></tool>')
        self.assertEqual(calls[0].params, {"command": "ls -la"})

    def test_tool_attribute_alias(self):
        calls = extract_tool_calls('<tool tool="git" action="status"></tool>')
        self.assertEqual(calls[0].tool, "git")

    def test_cdata_content_kept_verbatim(self):
        text = """<tool name="filesystem" action="write">
  <path>src/a.py</path>
  <content><![CDATA[if a < b:
    print("<ok>")]]></content>
</tool>"""
        call = extract_tool_calls(text)[0]
        self.assertEqual(call.params["path"], "src/a.py")
        self.assertEqual(call.params["content"], 'if a < b:\n    print("<ok>")')

    def test_document_order(self):
        text = (
            '<tool name="filesystem" action="list"></tool> then '
            '<tool name="git" action="status"></tool>'
        )
        self.assertEqual([c.tool for c in extract_tool_calls(text)], ["filesystem", "git"])

    def test_self_closing_call(self):
        calls = extract_tool_calls('<tool name="filesystem" action="list"/>')
        self.assertEqual(calls, [ToolCall("filesystem", "list", {})])

    def test_self_closing_with_attribute_params(self):
        calls = extract_tool_calls('<tool name="shell" action="run" command="ls" />')
        self.assertEqual(calls, [ToolCall("shell", "run", {"command": "ls"})])

    def test_self_closing_before_block_keeps_both_calls(self):
        text = (
            '<tool name="git" action="status"/>\n'
            '<tool name="filesystem" action="write">'
            '<path>src/a.py</path><content>x</content></tool>'
        )
        self.assertEqual(extract_tool_calls(text), [
            ToolCall("git", "status", {}),
            ToolCall("filesystem", "write", {"path": "src/a.py", "content": "x"}),
        ])

    def test_deterministic(self):
        text = '<tool name="git" action="commit"><message>wip</message></tool>'
        self.assertEqual(extract_tool_calls(text), extract_tool_calls(text))

    def test_to_dict(self):
        call = ToolCall("git", "commit", {"message": "m"})
        self.assertEqual(call.to_dict(), {"tool": "git", "action": "commit", "params": {"message": "m"}})


class TestFormatToolResult(unittest.TestCase):

    def test_success_is_escaped(self):
        out = format_tool_result("shell", "run", True, output="a < b")
        self.assertIn('success="true"', out)
        self.assertIn("<output>a &lt; b</output>", out)

    def test_failure(self):
        out = format_tool_result("shell", "run", False, error="boom")
        self.assertIn('success="false"', out)
        self.assertIn("<error>boom</error>", out)


if __name__ == "__main__":
    unittest.main()
