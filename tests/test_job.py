import random
from itertools import count, islice

import pytest
from loguru import logger
from pydantic import ValidationError

from topk.config import JobSettings
from topk.job import iter_partitions, main, read_result, run_job, write_result
from topk.pipeline_types import Candidate


def write_users_xml(path, users):
    lines = ['<?xml version="1.0" encoding="utf-8"?>', "<users>"]
    for ident, rep in users:
        lines.append(f'  <row Id="{ident}" Reputation="{rep}" DisplayName="user{ident}" />')
    lines.append("</users>")
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


@pytest.fixture
def users_xml(tmp_path):
    rng = random.Random(42)
    users = list(zip(range(1, 501), rng.sample(range(1, 100_001), 500)))
    path = tmp_path / "users.xml"
    write_users_xml(path, users)
    expected = sorted(users, key=lambda u: (-u[1], str(u[0])))[:10]
    return path, expected


def test_iter_partitions_contiguous_chunks():
    parts = list(iter_partitions(list("abcdefg"), 3))
    assert parts == [["a", "b", "c"], ["d", "e", "f"], ["g"]]


def test_iter_partitions_never_empty():
    assert list(iter_partitions(["x", "y"], 5)) == [["x", "y"]]
    assert list(iter_partitions([], 4)) == []
    with pytest.raises(ValueError):
        list(iter_partitions(["x"], 0))


def test_iter_partitions_reads_lazily():
    # an endless source must still yield chunks one at a time
    endless = (str(i) for i in count())
    first_two = list(islice(iter_partitions(endless, 3), 2))
    assert first_two == [["0", "1", "2"], ["3", "4", "5"]]
    assert next(endless) == "6"


def test_run_job_matches_sorting_everything(users_xml):
    path, expected = users_xml
    result = run_job([path], JobSettings(k=10, partition_size=75, fanin=2, workers=1))
    assert [(int(c.identifier), c.score) for c in result] == expected


def test_run_job_independent_of_partition_size(users_xml):
    path, _ = users_xml
    results = {
        run_job([path], JobSettings(k=10, partition_size=n, workers=1, tie_policy="identifier"))
        for n in (1, 7, 50, 333, 10_000)
    }
    assert len(results) == 1


def test_run_job_multiple_sources(tmp_path):
    a, b = tmp_path / "a.xml", tmp_path / "b.xml"
    write_users_xml(a, [(1, 5), (2, 9), (3, 1), (4, 7)])
    write_users_xml(b, [(5, 8), (6, 2), (7, 10)])
    result = run_job([a, b], JobSettings(k=3, partition_size=4, workers=1))
    assert [c.score for c in result] == [10, 9, 8]


def test_run_job_with_process_pool(users_xml):
    path, expected = users_xml
    result = run_job([path], JobSettings(k=10, partition_size=120, workers=2))
    assert [(int(c.identifier), c.score) for c in result] == expected


def test_run_job_tsv(tmp_path):
    path = tmp_path / "scores.tsv"
    path.write_text("alice\t3\nbob\t9\nbroken line\ncarol\t5\n", encoding="utf-8")
    result = run_job([path], JobSettings(k=2, partition_size=2, workers=1, input_format="tsv"))
    assert [c.identifier for c in result] == ["bob", "carol"]


def test_payload_travels_to_output(tmp_path):
    src = tmp_path / "users.xml"
    write_users_xml(src, [(1, 50), (2, 70)])
    result = run_job([src], JobSettings(k=1, partition_size=2, workers=1, keep_payload=True))
    assert 'DisplayName="user2"' in result[0].payload

    out = tmp_path / "out" / "top.csv"
    write_result(result, out, include_payload=True)
    back = read_result(out)
    assert back == result
    assert back[0].payload == result[0].payload


def test_write_and_read_result(tmp_path):
    result = (Candidate(10, "007"), Candidate(9, "a,b"))
    out = tmp_path / "top.csv"
    write_result(result, out)
    assert out.read_text(encoding="utf-8").splitlines()[0] == "score,identifier"
    assert read_result(out) == result


def test_write_empty_result(tmp_path):
    out = tmp_path / "empty.csv"
    write_result((), out)
    assert read_result(out) == ()


def test_read_result_requires_columns(tmp_path):
    bad = tmp_path / "bad.csv"
    bad.write_text("a,b\n1,2\n", encoding="utf-8")
    with pytest.raises(ValueError):
        read_result(bad)
    with pytest.raises(FileNotFoundError):
        read_result(tmp_path / "missing.csv")


def test_cli_writes_csv(users_xml, tmp_path):
    path, expected = users_xml
    out = tmp_path / "top10.csv"
    code = main([str(path), "--output", str(out), "--k", "10", "--partition-size", "170", "--log-level", "WARNING"])
    assert code == 0
    assert [(int(c.identifier), c.score) for c in read_result(out)] == expected


def test_cli_prints_to_stdout(tmp_path, capsys):
    src = tmp_path / "users.xml"
    write_users_xml(src, [(1, 5), (2, 9), (3, 1)])
    code = main([str(src), "--k", "2", "--log-level", "WARNING"])
    assert code == 0
    assert capsys.readouterr().out.splitlines() == ["9\t2", "5\t1"]


def test_cli_missing_input_exit_code(tmp_path):
    assert main([str(tmp_path / "missing.xml"), "--log-level", "CRITICAL"]) == 1


def test_cli_invalid_k_exit_code(tmp_path):
    src = tmp_path / "users.xml"
    write_users_xml(src, [(1, 5)])
    assert main([str(src), "--k", "0", "--log-level", "CRITICAL"]) == 1


def test_cli_log_file(tmp_path):
    src = tmp_path / "users.xml"
    write_users_xml(src, [(1, 5), (2, 9)])
    log = tmp_path / "logs" / "topk.log"
    assert main([str(src), "--k", "1", "--log-level", "CRITICAL", "--log-file", str(log)]) == 0
    logger.remove()  # closes and flushes the file sink
    assert "Final top-1" in log.read_text(encoding="utf-8")


def numeric_id(identifier):
    return int(identifier)


def test_run_job_uses_identifier_key(tmp_path):
    src = tmp_path / "users.xml"
    write_users_xml(src, [(10, 5), (9, 5), (100, 1)])
    settings = JobSettings(k=1, partition_size=1, workers=1, tie_policy="identifier")
    # lexicographically "10" sorts before "9"; numerically 9 comes first
    assert run_job([src], settings)[0].identifier == "10"
    assert run_job([src], settings, identifier_key=numeric_id)[0].identifier == "9"


def test_run_job_identifier_key_with_process_pool(tmp_path):
    src = tmp_path / "users.xml"
    write_users_xml(src, [(10, 5), (9, 5), (8, 4), (100, 1)])
    settings = JobSettings(k=2, partition_size=2, workers=2, tie_policy="identifier")
    result = run_job([src], settings, identifier_key=numeric_id)
    assert [c.identifier for c in result] == ["9", "10"]


def test_bad_tie_policy_env_is_rejected(monkeypatch, tmp_path):
    src = tmp_path / "users.xml"
    write_users_xml(src, [(1, 5)])
    monkeypatch.setenv("TOPK_TIE_POLICY", "bogus")
    with pytest.raises(ValidationError):
        run_job([src])
    assert main([str(src), "--log-level", "CRITICAL"]) == 1
    # an explicit choice overrides the broken environment default
    assert main([str(src), "--tie-policy", "identifier", "--log-level", "CRITICAL"]) == 0
