import csv

import pytest

import experiments as exp


def test_run_one_sample_metrics():
    row = exp.run_one(b"aaaaabbbccd", "tree")
    assert row.correctness_ok == 1
    assert row.unique_symbols == 4
    assert row.tree_depth == 3
    assert row.payload_bytes == 3
    assert row.pad_bits == 4
    assert row.container_freq_bytes == 36
    assert row.container_codes_bytes == 40
    assert row.avg_code_length == pytest.approx(20 / 11)
    assert 0 <= row.redundancy_bits < 1
    assert row.compression_ratio == pytest.approx(36 / 11)


@pytest.mark.parametrize("pipeline", exp.PIPELINES)
@pytest.mark.parametrize("gen_name", sorted(exp.GENERATOR_REGISTRY))
def test_every_generator_round_trips(pipeline, gen_name):
    data = exp.generate_dataset(gen_name, 2048, seed=1)
    assert len(data) == 2048
    assert exp.run_one(data, pipeline).correctness_ok == 1


def test_generators_are_seeded():
    assert exp.generate_dataset("zipf128", 512, 4) == exp.generate_dataset("zipf128", 512, 4)
    assert exp.generate_dataset("zipf128", 512, 4) != exp.generate_dataset("zipf128", 512, 5)


def test_fibonacci_generator_builds_deep_tree():
    row = exp.run_one(exp.generate_dataset("fibonacci20", 50_000, seed=2), "table")
    assert row.tree_depth >= 10


def test_unknown_generator_and_pipeline():
    with pytest.raises(ValueError):
        exp.generate_dataset("nope", 10, 0)
    with pytest.raises(ValueError):
        exp.run_one(b"abc", "bogus")


def test_main_writes_csv(tmp_path):
    rc = exp.main([
        "--outdir", str(tmp_path), "--runs", "2", "--no_plots",
        "--exp1_size_kb", "1", "--exp1_generators", "zipf128,single_symbol",
        "--no_exp2", "--no_exp3",
    ])
    assert rc == 0

    with (tmp_path / "metrics.csv").open(newline="") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 2 * 2 * len(exp.PIPELINES)
    assert all(r["correctness_ok"] == "1" for r in rows)

    with (tmp_path / "summary.csv").open(newline="") as f:
        summary = list(csv.DictReader(f))
    assert len(summary) == 2 * len(exp.PIPELINES)
    assert all(s["n_runs"] == "2" for s in summary)
    assert all(float(s["correctness_ok_rate"]) == 1.0 for s in summary)


def test_main_draws_charts(tmp_path):
    exp.main([
        "--outdir", str(tmp_path), "--runs", "1",
        "--exp1_size_kb", "1", "--exp1_generators", "english_like",
        "--exp2_min_kb", "1", "--exp2_max_kb", "2", "--exp2_generators", "uniform16",
    ])
    for name in ("exp1_compression_ratio.png", "exp1_code_length.png", "exp1_decode_time.png",
                 "exp2_decode_time_uniform16.png", "exp3_container_size.png"):
        assert (tmp_path / name).exists()


def test_main_rejects_unknown_generator(tmp_path):
    with pytest.raises(SystemExit):
        exp.main(["--outdir", str(tmp_path), "--exp1_generators", "bogus"])
