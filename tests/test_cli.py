"""
Tests for the train.py and sample.py command-line scripts.
"""

import glob
import os
import sys

import pytest

CORPUS = "First Citizen:\nBefore we proceed any further, hear me speak.\n" * 10


@pytest.fixture
def trained_dir(tmp_path, monkeypatch):
    import train

    corpus = tmp_path / "input.txt"
    corpus.write_text(CORPUS, encoding="utf-8")
    checkpoint_dir = tmp_path / "checkpoints"

    monkeypatch.setattr(
        sys,
        "argv",
        [
            "train.py",
            "--input-text", str(corpus),
            "--checkpoint-dir", str(checkpoint_dir),
            "--cell-type", "rnn",
            "--embedding-dim", "4",
            "--hidden-dim", "6",
            "--num-layers", "1",
            "--batch-size", "2",
            "--seq-length", "8",
            "--max-epochs", "1",
            "--sample-length", "0",
            "--log-level", "WARNING",
            "--seed", "0",
        ],
    )
    train.main()
    return checkpoint_dir


class TestTrainScript:
    def test_writes_checkpoint_and_vocabulary(self, trained_dir):
        assert (trained_dir / "vocabulary.json").exists()
        assert (trained_dir / "checkpoint_best.npz").exists()
        assert len(glob.glob(os.path.join(str(trained_dir), "checkpoint_*.npz"))) >= 2

    def test_arguments_map_onto_configs(self):
        import train

        args = train.build_parser().parse_args(
            ["--hidden-dim", "32", "--no-remember-states", "--nonfinite-policy", "abort"]
        )
        model_kwargs, config = train.configs_from_args(args)

        assert model_kwargs["hidden_dim"] == 32
        assert "vocab_size" not in model_kwargs
        assert config.remember_states is False
        assert config.nonfinite_policy == "abort"


class TestSampleScript:
    def test_prints_seed_and_generated_text(self, trained_dir, monkeypatch, capsys):
        import sample

        monkeypatch.setattr(
            sys,
            "argv",
            [
                "sample.py",
                "--checkpoint", str(trained_dir / "checkpoint_best.npz"),
                "--length", "25",
                "--start-text", "First",
                "--seed", "3",
            ],
        )
        sample.main()
        output = capsys.readouterr().out

        assert output.startswith("First")
        assert len(output) == len("First") + 25 + 1

    def test_argmax_is_repeatable(self, trained_dir, monkeypatch, capsys):
        import sample

        argv = [
            "sample.py",
            "--checkpoint", str(trained_dir / "checkpoint_best.npz"),
            "--length", "15",
            "--no-sample",
        ]
        outputs = []
        for _ in range(2):
            monkeypatch.setattr(sys, "argv", argv)
            sample.main()
            outputs.append(capsys.readouterr().out)

        assert outputs[0] == outputs[1]

    def test_zero_temperature_fails_before_output(self, trained_dir, monkeypatch, capsys):
        import sample
        from char_rnn.exceptions import InvalidSamplingArgumentError

        monkeypatch.setattr(
            sys,
            "argv",
            [
                "sample.py",
                "--checkpoint", str(trained_dir / "checkpoint_best.npz"),
                "--start-text", "First",
                "--temperature", "0",
            ],
        )

        capsys.readouterr()
        with pytest.raises(InvalidSamplingArgumentError):
            sample.main()
        assert capsys.readouterr().out == ""
