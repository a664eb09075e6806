"""
Tests for the command-line entry point (burnin/cli.py) and run metadata
(burnin/metadata.py).
"""

import argparse
import io
import json
import random
import tempfile
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

from burnin.cli import build_parser, main, make_worker, prepare_logs_dir, setup
from burnin.health import StartupError
from burnin.metadata import ADJECTIVES, NOUNS, generate_instance_name, generate_run_metadata

YJIT_VERSION = "ruby 3.4.0dev +YJIT [x86_64-linux]"


class TestBuildParser(unittest.TestCase):
    def test_defaults(self):
        args = build_parser().parse_args([])
        self.assertEqual(args.logs_path, Path("./logs_burn_in"))
        self.assertFalse(args.delete_old_logs)
        self.assertEqual(args.num_long_runs, 4)
        self.assertEqual(args.categories, ["headline", "other"])
        self.assertFalse(args.no_yjit)
        self.assertGreaterEqual(args.num_procs, 1)
        self.assertIsNone(args.seed)

    def test_category_list(self):
        args = build_parser().parse_args(["--category=headline,other,micro"])
        self.assertEqual(args.categories, ["headline", "other", "micro"])

    def test_underscore_aliases(self):
        args = build_parser().parse_args(
            ["--logs_path=/tmp/x", "--num_procs=3", "--num_long_runs=1", "--no_yjit"]
        )
        self.assertEqual(args.logs_path, Path("/tmp/x"))
        self.assertEqual(args.num_procs, 3)
        self.assertEqual(args.num_long_runs, 1)
        self.assertTrue(args.no_yjit)


class TestPrepareLogsDir(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.logs_path = Path(self.temp_dir.name) / "logs"

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_creates_directory(self):
        prepare_logs_dir(self.logs_path, delete_old_logs=False)
        self.assertTrue(self.logs_path.is_dir())

    def test_refuses_existing_directory(self):
        self.logs_path.mkdir()
        with self.assertRaises(StartupError):
            prepare_logs_dir(self.logs_path, delete_old_logs=False)

    def test_deletes_old_logs(self):
        self.logs_path.mkdir()
        (self.logs_path / "error_fib_001.txt").write_text("old")

        prepare_logs_dir(self.logs_path, delete_old_logs=True)

        self.assertEqual(list(self.logs_path.iterdir()), [])


class TestSetup(unittest.TestCase):
    """Tests for the startup sequence."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        root = Path(self.temp_dir.name)
        self.catalog = root / "benchmarks.yml"
        self.catalog.write_text(
            "railsbench:\n  category: headline\nfib:\n  category: micro\nnbody: {}\n"
        )
        self.argv = ["--logs-path", str(root / "logs"), "--catalog", str(self.catalog)]
        patches = [
            patch("burnin.cli.get_runtime_version", return_value=YJIT_VERSION),
            patch("burnin.cli.check_debug_info", return_value=True),
            patch("sys.stdout", new_callable=io.StringIO),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_resolves_benchmarks(self):
        args = build_parser().parse_args(self.argv)

        version, names = setup(args)

        self.assertEqual(version, YJIT_VERSION)
        self.assertEqual(names, ["nbody", "railsbench"])
        self.assertTrue(args.logs_path.is_dir())

    def test_no_matching_benchmarks(self):
        args = build_parser().parse_args(self.argv + ["--category=nothing"])
        with self.assertRaises(StartupError):
            setup(args)

    def test_bad_catalog(self):
        self.catalog.write_text("- not a mapping\n")
        args = build_parser().parse_args(self.argv)
        with self.assertRaises(StartupError):
            setup(args)

    def test_missing_yjit(self):
        args = build_parser().parse_args(self.argv)
        with patch("burnin.cli.get_runtime_version", return_value="ruby 3.3.0 [x86_64-linux]"):
            with self.assertRaises(StartupError):
                setup(args)

    def test_invalid_worker_counts(self):
        for extra in (["--num-procs=0"], ["--num-long-runs=-1"]):
            with self.subTest(extra=extra):
                args = build_parser().parse_args(self.argv + extra)
                with self.assertRaises(StartupError):
                    setup(args)

    def test_make_worker_uses_args(self):
        args = build_parser().parse_args(self.argv + ["--no-yjit", "--ruby=/opt/ruby/bin/ruby"])

        worker = make_worker(
            2, 10, 1234, args=args, bench_names=["fib"], runtime_version=YJIT_VERSION
        )

        self.assertEqual(worker.worker_id, 2)
        self.assertEqual(worker.run_time, 10)
        self.assertTrue(worker.no_yjit)
        self.assertEqual(worker.seed, 1234)
        self.assertEqual(worker.execution_manager.ruby, "/opt/ruby/bin/ruby")
        self.assertEqual(worker.logs_dir, args.logs_path)


class TestMain(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.catalog = self.root / "benchmarks.yml"
        self.catalog.write_text("fib:\n  category: headline\n")
        self.logs_path = self.root / "logs"

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_startup_error_exits(self):
        self.logs_path.mkdir()
        argv = ["burnin", "--logs-path", str(self.logs_path)]
        with patch("sys.argv", argv), patch("sys.stderr", new_callable=io.StringIO) as stderr:
            with self.assertRaises(SystemExit) as cm:
                main()
        self.assertEqual(cm.exception.code, 1)
        self.assertIn("Logs directory already exists", stderr.getvalue())

    def test_runs_supervisor_until_interrupted(self):
        argv = [
            "burnin",
            "--logs-path",
            str(self.logs_path),
            "--catalog",
            str(self.catalog),
            "--num-procs=3",
            "--num-long-runs=1",
            "--seed=5",
        ]
        supervisor = MagicMock()
        supervisor.run.side_effect = KeyboardInterrupt
        with patch("sys.argv", argv), patch(
            "burnin.cli.get_runtime_version", return_value=YJIT_VERSION
        ), patch("burnin.cli.check_debug_info", return_value=True), patch(
            "burnin.cli.Supervisor", return_value=supervisor
        ) as supervisor_cls, patch("sys.stdout", new_callable=io.StringIO) as stdout, patch(
            "sys.stderr", new_callable=io.StringIO
        ):
            main()

        supervisor.start.assert_called_once()
        supervisor.shutdown.assert_called_once()
        kwargs = supervisor_cls.call_args.kwargs
        self.assertEqual(kwargs["num_procs"], 3)
        self.assertEqual(kwargs["num_long_runs"], 1)
        self.assertEqual(len(kwargs["seeds"]), 3)
        self.assertIn("BURN-IN SUMMARY", stdout.getvalue())
        self.assertIn("KeyboardInterrupt", stdout.getvalue())

        metadata = json.loads((self.logs_path / "run_metadata.json").read_text())
        self.assertEqual(metadata["configuration"]["benchmarks"], ["fib"])
        self.assertEqual(metadata["configuration"]["worker_seeds"], kwargs["seeds"])


class TestRunMetadata(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.logs_dir = Path(self.temp_dir.name)

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_instance_name(self):
        adjective, noun = generate_instance_name(random.Random(3)).split("-")
        self.assertIn(adjective, ADJECTIVES)
        self.assertIn(noun, NOUNS)

    def test_writes_metadata_file(self):
        args = argparse.Namespace(ruby="ruby", num_procs=2, logs_path=self.logs_dir)

        metadata = generate_run_metadata(self.logs_dir, args, YJIT_VERSION, ["a", "b"], [1, 2])

        saved = json.loads((self.logs_dir / "run_metadata.json").read_text())
        self.assertEqual(saved["run_id"], metadata["run_id"])
        self.assertEqual(saved["environment"]["runtime_version"], YJIT_VERSION)
        self.assertEqual(saved["configuration"]["args"]["num_procs"], 2)
        self.assertEqual(saved["configuration"]["worker_seeds"], [1, 2])
        self.assertGreaterEqual(saved["hardware"]["cpu_count_logical"], 1)


if __name__ == "__main__":
    unittest.main()
