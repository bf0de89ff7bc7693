"""
Tests for the LM Studio helpers and hardware probes.
"""
import base64
import itertools
import json
import subprocess
import unittest
from unittest.mock import MagicMock, patch

from lmstudio_ai import lmstudio, system_info


class TestLMStudioHelpers(unittest.TestCase):
    """Test cases for the lms CLI wrappers."""

    def setUp(self):
        self.paths_patch = patch(
            'lmstudio_ai.lmstudio.get_lmstudio_paths',
            return_value={"LMStudioExe": "/opt/lm-studio/lm-studio", "LMSExe": "/home/u/.lmstudio/bin/lms"}
        )
        self.run_patch = patch('lmstudio_ai.lmstudio.subprocess.run')
        self.paths_patch.start()
        self.mock_run = self.run_patch.start()
        self.mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")

    def tearDown(self):
        self.paths_patch.stop()
        self.run_patch.stop()

    def _command(self):
        return self.mock_run.call_args[0][0]

    def test_load_model_arguments(self):
        lmstudio.load_model("qwen2.5-vl-7b", gpu=0.5, ttl=300, context_length=8192)
        self.assertEqual(self._command(), [
            "/home/u/.lmstudio/bin/lms", "load", "qwen2.5-vl-7b", "--yes",
            "--gpu", "0.5", "--ttl", "300", "--context-length", "8192"
        ])

    def test_load_model_gpu_extremes(self):
        lmstudio.load_model("m", gpu=0)
        self.assertEqual(self._command()[-2:], ["--gpu", "off"])
        lmstudio.load_model("m", gpu=1)
        self.assertEqual(self._command()[-2:], ["--gpu", "max"])
        lmstudio.load_model("m")
        self.assertEqual(self._command()[-1], "--yes")

    def test_model_list(self):
        models = [{"modelKey": "qwen2.5-vl-7b", "type": "llm"}]
        self.mock_run.return_value = subprocess.CompletedProcess(
            args=[], returncode=0, stdout=json.dumps(models), stderr=""
        )

        self.assertEqual(lmstudio.get_lmstudio_model_list(), models)
        self.assertEqual(self._command()[1:], ["ls", "--json"])

        self.assertEqual(lmstudio.get_lmstudio_loaded_model_list(), models)
        self.assertEqual(self._command()[1:], ["ps", "--json"])

    def test_failed_command(self):
        self.mock_run.side_effect = subprocess.CalledProcessError(1, ["lms"], stderr="model not found")
        with self.assertRaises(RuntimeError) as context:
            lmstudio.load_model("missing")
        self.assertIn("model not found", str(context.exception))

    def test_unparseable_output(self):
        self.mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=0, stdout="oops", stderr="")
        with self.assertRaises(RuntimeError):
            lmstudio.get_lmstudio_model_list()

    def test_not_installed(self):
        with patch('lmstudio_ai.lmstudio.get_lmstudio_paths', return_value={"LMStudioExe": None, "LMSExe": None}):
            with self.assertRaises(RuntimeError):
                lmstudio.get_lmstudio_model_list()
            self.assertFalse(lmstudio.is_lmstudio_installed())


class TestLMStudioEnvironment(unittest.TestCase):
    """Test cases for path discovery, process detection and MCP deeplinks."""

    def tearDown(self):
        lmstudio._cached_paths.clear()

    def test_paths_are_cached(self):
        lmstudio._cached_paths.clear()
        with patch('lmstudio_ai.lmstudio._first_existing', side_effect=["/app", "/lms"]) as mock_find:
            first = lmstudio.get_lmstudio_paths()
            second = lmstudio.get_lmstudio_paths()

        self.assertEqual(first, {"LMStudioExe": "/app", "LMSExe": "/lms"})
        self.assertEqual(second, first)
        self.assertEqual(mock_find.call_count, 2)

    @patch('lmstudio_ai.lmstudio.psutil.process_iter')
    def test_is_running(self, mock_iter):
        mock_iter.return_value = [MagicMock(info={"name": "python"}), MagicMock(info={"name": "LM Studio Helper"})]
        self.assertTrue(lmstudio.is_lmstudio_running())

        mock_iter.return_value = [MagicMock(info={"name": "bash"}), MagicMock(info={"name": None})]
        self.assertFalse(lmstudio.is_lmstudio_running())

    def test_mcp_deeplink(self):
        link = lmstudio.get_mcp_server_deeplink("images", "http://localhost:9000/mcp")

        self.assertTrue(link.startswith("lmstudio://mcp?config="))
        decoded = json.loads(base64.b64decode(link.split("config=", 1)[1]))
        self.assertEqual(decoded, {"servers": {"images": {"type": "http", "url": "http://localhost:9000/mcp"}}})

    @patch('lmstudio_ai.lmstudio.webbrowser.open')
    def test_add_mcp_server(self, mock_open):
        mock_open.return_value = True
        link = lmstudio.add_mcp_server_to_lmstudio()
        mock_open.assert_called_once_with(link)

        mock_open.return_value = False
        with self.assertRaises(RuntimeError):
            lmstudio.add_mcp_server_to_lmstudio()


class TestStartLMStudio(unittest.TestCase):
    """Test cases for starting the server and application."""

    def setUp(self):
        patches = {
            "paths": patch('lmstudio_ai.lmstudio.get_lmstudio_paths', return_value={
                "LMStudioExe": "/opt/lm-studio/lm-studio", "LMSExe": "/home/u/.lmstudio/bin/lms"
            }),
            "run": patch('lmstudio_ai.lmstudio.subprocess.run'),
            "popen": patch('lmstudio_ai.lmstudio.subprocess.Popen'),
            "running": patch('lmstudio_ai.lmstudio.is_lmstudio_running'),
            "sleep": patch('lmstudio_ai.lmstudio.time.sleep'),
        }
        self.mocks = {name: p.start() for name, p in patches.items()}
        for p in patches.values():
            self.addCleanup(p.stop)
        self.mocks["run"].return_value = subprocess.CompletedProcess(args=[], returncode=0, stdout="", stderr="")

    def test_already_running(self):
        self.mocks["running"].return_value = True

        self.assertFalse(lmstudio.start_lmstudio())

        self.mocks["run"].assert_not_called()
        self.mocks["popen"].assert_not_called()

    def test_starts_server_and_waits_for_process(self):
        self.mocks["running"].side_effect = [False, False, True]

        self.assertTrue(lmstudio.start_lmstudio(port=4321))

        self.assertEqual(self.mocks["run"].call_args[0][0],
                         ["/home/u/.lmstudio/bin/lms", "server", "start", "--port", "4321"])
        self.assertEqual(self.mocks["popen"].call_args[0][0], ["/opt/lm-studio/lm-studio"])
        self.assertEqual(self.mocks["sleep"].call_count, 1)

    @patch('lmstudio_ai.lmstudio.time.monotonic', side_effect=itertools.count(0, 20))
    def test_times_out(self, mock_monotonic):
        self.mocks["running"].return_value = False

        with self.assertRaises(TimeoutError):
            lmstudio.start_lmstudio(timeout=30)

    def test_missing_application(self):
        self.mocks["running"].return_value = False
        self.mocks["paths"].return_value = {"LMStudioExe": None, "LMSExe": None}

        with self.assertRaises(RuntimeError):
            lmstudio.start_lmstudio()
        self.mocks["popen"].assert_not_called()


class TestSystemInfo(unittest.TestCase):
    """Test cases for the hardware probes."""

    @patch('lmstudio_ai.system_info.psutil.cpu_count')
    def test_cpu_cores(self, mock_count):
        mock_count.side_effect = lambda logical=True: 12 if logical else 6
        self.assertEqual(system_info.get_number_of_cpu_cores(), 12)

        mock_count.side_effect = lambda logical=True: 8 if logical else None
        self.assertEqual(system_info.get_number_of_cpu_cores(), 8)

    @patch('lmstudio_ai.system_info.shutil.which', return_value=None)
    def test_no_nvidia_smi(self, mock_which):
        self.assertFalse(system_info.has_capable_gpu())

    @patch('lmstudio_ai.system_info.subprocess.run')
    @patch('lmstudio_ai.system_info.shutil.which', return_value="/usr/bin/nvidia-smi")
    def test_gpu_memory(self, mock_which, mock_run):
        mock_run.return_value = subprocess.CompletedProcess(args=[], returncode=0, stdout="2048\n8192\n", stderr="")
        self.assertTrue(system_info.has_capable_gpu())
        self.assertFalse(system_info.has_capable_gpu(16384))

    @patch('lmstudio_ai.system_info.subprocess.run', side_effect=subprocess.TimeoutExpired("nvidia-smi", 15))
    @patch('lmstudio_ai.system_info.shutil.which', return_value="/usr/bin/nvidia-smi")
    def test_gpu_query_failure(self, mock_which, mock_run):
        self.assertFalse(system_info.has_capable_gpu())


if __name__ == "__main__":
    unittest.main()
