from __future__ import annotations

import io
import json
import sys
import tempfile
import unittest
import xml.etree.ElementTree as ET
from pathlib import Path
from unittest import mock

TESTS_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = TESTS_DIR.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from shapekit import cli

SVG = "{http://www.w3.org/2000/svg}"

GRAPH_JSON = json.dumps(
    {
        "nodes": [
            {"id": "a", "x": 0, "y": 0, "label": "Start"},
            {"id": "b", "x": 200, "y": 0, "type": "rect", "label": "End"},
        ],
        "edges": [{"source": "a", "target": "b", "type": "quadratic", "label": "go"}],
    }
)

CARD_MARKUP = """
<group anchor-points="0,0.5 1,0.5">
  <rect name="box" keyshape="true" x="-40" y="-15" width="80" height="30" fill="#eee"/>
  <text name="title" text-anchor="middle">{{label}}</text>
</group>
""".strip()


class CLIAcceptanceTests(unittest.TestCase):
    def run_cli(self, argv: list[str], stdin_text: str = "") -> tuple[int, str, str]:
        stdout = io.StringIO()
        stderr = io.StringIO()
        stdin = io.StringIO(stdin_text)
        with mock.patch("sys.stdout", stdout), mock.patch("sys.stderr", stderr), mock.patch("sys.stdin", stdin):
            code = cli.main(argv)
        return code, stdout.getvalue(), stderr.getvalue()

    def test_requires_subcommand(self) -> None:
        code, _out, err = self.run_cli([])
        self.assertEqual(code, 2)
        self.assertIn("E_ARGS", err)
        self.assertIn("subcommand", err)

    def test_unknown_subcommand(self) -> None:
        code, _out, err = self.run_cli(["compile"])
        self.assertEqual(code, 2)
        self.assertIn("error[E_ARGS]", err)

    def test_render_text_to_stdout(self) -> None:
        code, out, err = self.run_cli(["render", "--text", GRAPH_JSON, "--stdout"])
        self.assertEqual(code, 0, err)
        root = ET.fromstring(out)
        self.assertEqual(root.tag, f"{SVG}svg")
        self.assertIsNotNone(root.find(f".//{SVG}g[@id='a']"))
        self.assertIsNotNone(root.find(f".//{SVG}g[@id='b']"))
        path = root.find(f".//{SVG}g[@id='edge-0']/{SVG}path")
        self.assertEqual(path.get("d"), "M 0 0 Q 100 -20 200 0")
        labels = [(t.text or "").strip() for t in root.iter(f"{SVG}text")]
        self.assertIn("go", labels)

    def test_render_is_deterministic(self) -> None:
        _code, first, _err = self.run_cli(["render", "--text", GRAPH_JSON])
        _code, second, _err = self.run_cli(["render", "--text", GRAPH_JSON])
        self.assertEqual(first, second)

    def test_render_from_stdin(self) -> None:
        code, out, err = self.run_cli(["render"], stdin_text=GRAPH_JSON)
        self.assertEqual(code, 0, err)
        self.assertTrue(out.startswith("<svg"))

    def test_empty_stdin(self) -> None:
        code, _out, err = self.run_cli(["render"], stdin_text="  \n")
        self.assertEqual(code, 2)
        self.assertIn("E_ARGS", err)

    def test_render_file_writes_svg(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            src = Path(td) / "graph.json"
            src.write_text(GRAPH_JSON)
            code, out, err = self.run_cli(["render", str(src)])
            self.assertEqual(code, 0, err)
            target = Path(td) / "graph.svg"
            self.assertTrue(target.exists())
            self.assertIn("Wrote", out)
            ET.fromstring(target.read_text())

            custom = Path(td) / "custom.svg"
            code, _out, err = self.run_cli(["render", str(src), "-o", str(custom), "--padding", "0"])
            self.assertEqual(code, 0, err)
            self.assertEqual(ET.fromstring(custom.read_text()).get("width"), "270")

    def test_stdout_and_output_conflict(self) -> None:
        code, _out, err = self.run_cli(["render", "--text", "{}", "--stdout", "-o", "x.svg"])
        self.assertEqual(code, 2)
        self.assertIn("mutually exclusive", err)

    def test_missing_input_file(self) -> None:
        code, _out, err = self.run_cli(["render", "definitely_missing.json"])
        self.assertEqual(code, 2)
        self.assertIn("E_IO_READ", err)

    def test_invalid_json_error_format_json(self) -> None:
        code, _out, err = self.run_cli(["--error-format", "json", "render", "--text", '{"nodes": ['])
        self.assertEqual(code, 2)
        payload = json.loads(err)
        self.assertFalse(payload["ok"])
        self.assertEqual(payload["code"], "E_PARSE_JSON")
        self.assertEqual(payload["file"], "<text>")
        self.assertEqual(payload["line"], 1)

    def test_graph_must_be_object(self) -> None:
        code, _out, err = self.run_cli(["render", "--text", "[1, 2]"])
        self.assertEqual(code, 3)
        self.assertIn("E_GRAPH_DATA", err)

    def test_unknown_edge_endpoint(self) -> None:
        graph = json.dumps({"nodes": [{"id": "a"}], "edges": [{"source": "a", "target": "nope"}]})
        code, _out, err = self.run_cli(["render", "--text", graph])
        self.assertEqual(code, 3)
        self.assertIn("E_EDGE_ENDPOINT", err)

    def test_define_registers_markup_node(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            markup = Path(td) / "card.xml"
            markup.write_text(CARD_MARKUP)
            define = f"card={markup}"

            code, out, err = self.run_cli(["types", "--family", "node", "--define", define])
            self.assertEqual(code, 0, err)
            self.assertIn("  card\n", out)

            graph = json.dumps({"nodes": [{"id": "c", "type": "card", "label": "Hi"}]})
            code, out, err = self.run_cli(["render", "--text", graph, "--define", define])
            self.assertEqual(code, 0, err)
            root = ET.fromstring(out)
            box = root.find(f".//{SVG}g[@id='c']/{SVG}rect")
            self.assertEqual(box.get("data-name"), "box")
            title = root.find(f".//{SVG}g[@id='c']/{SVG}text")
            self.assertEqual(title.text.strip(), "Hi")

    def test_define_with_bad_markup(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            markup = Path(td) / "broken.xml"
            markup.write_text("<group>\n  <rect>\n</group>")
            code, _out, err = self.run_cli(
                ["--error-format", "json", "types", "--define", f"broken={markup}"]
            )
            self.assertEqual(code, 3)
            payload = json.loads(err)
            self.assertEqual(payload["code"], "E_MARKUP_PARSE")
            self.assertEqual(payload["file"], str(markup))
            self.assertEqual(payload["line"], 3)

    def test_define_requires_name_and_file(self) -> None:
        code, _out, err = self.run_cli(["types", "--define", "card"])
        self.assertEqual(code, 2)
        self.assertIn("invalid --define", err)

    def test_types_lists_family_defaults(self) -> None:
        code, out, err = self.run_cli(["types", "--family", "edge"])
        self.assertEqual(code, 0, err)
        self.assertIn("edge (default: line)", out)
        self.assertIn("  cubic", out)
        self.assertNotIn("node (", out)

        code, out, err = self.run_cli(["types"])
        self.assertEqual(code, 0, err)
        for header in ("node (default: circle)", "edge (default: line)", "combo (default: circle)"):
            self.assertIn(header, out)

    def test_reference_command(self) -> None:
        code, out, err = self.run_cli(["reference"])
        self.assertEqual(code, 0, err)
        self.assertIn("shapekit quick reference", out)
        self.assertIn("## Node markup", out)

    def test_debug_traceback_gate(self) -> None:
        with mock.patch("shapekit.cli.render_graph", side_effect=RuntimeError("boom")):
            code, _out, err = self.run_cli(["render", "--text", "{}"])
            self.assertEqual(code, 1)
            self.assertIn("E_INTERNAL", err)
            self.assertNotIn("Traceback", err)

        with mock.patch("shapekit.cli.render_graph", side_effect=RuntimeError("boom")):
            code, _out, err = self.run_cli(["--debug", "render", "--text", "{}"])
            self.assertEqual(code, 1)
            self.assertIn("Traceback", err)


if __name__ == "__main__":
    unittest.main()
