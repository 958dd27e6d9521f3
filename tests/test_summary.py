import numpy as np
import pytest

from conftest import hairpin_means
from poresummary.config import SummaryConfig
from poresummary.models import ModelParameters, RejectReason, StrandBounds
from poresummary.summary import (
    TSV_COLUMNS,
    AnnotationTagExhaustedError,
    ReadSummary,
    base_file_name,
    pick_annotation_tag,
    tsv_header,
)


def _summarize(read, models, config=None, name="reads/read_1.fast5") -> ReadSummary:
    summary = ReadSummary(name, config, opener=read.opener)
    summary.summarize(models)
    return summary


def test_two_strand_read(fake_read, raw_events, models):
    read = fake_read(raw_events(hairpin_means()))
    summary = _summarize(read, models)

    assert summary.accepted
    assert summary.status == "accepted"
    assert summary.read_id == "read-1"
    assert summary.num_events == 1000
    assert summary.abasic_level == 150.0
    assert summary.strand_bounds == StrandBounds(50, 430, 545, 950)
    assert not summary.scale_strands_together
    assert summary.annotation_tag == "Poresummary_000"
    assert set(summary.candidates) == {("t", ""), ("", "c")}

    params = summary.candidates[("t", "")].params
    assert params.scale == pytest.approx(5.0)
    assert params.shift == pytest.approx(50.0)
    assert summary.time_length[0] > 0
    assert summary.time_length[1] > 0

    # per-event data is released once the summary is built
    assert not summary.events_loaded
    assert read.event_loads == 1
    assert read.closes == read.opens


def test_load_drop_load_is_repeatable(fake_read, raw_events, models):
    read = fake_read(raw_events(hairpin_means()))
    summary = _summarize(read, models)

    summary.load_events()
    first = (summary.events(0), summary.events(1))
    summary.load_events()
    assert read.event_loads == 2

    summary.drop_events()
    with pytest.raises(RuntimeError):
        summary.events(0)
    summary.load_events()
    assert (summary.events(0), summary.events(1)) == first
    assert len(first[0]) == 380
    assert first[0][0].start == 0.0


def test_scale_strands_together(fake_read, raw_events, models):
    read = fake_read(raw_events(hairpin_means()))
    summary = _summarize(read, models, SummaryConfig(scale_strands_together=True))

    assert summary.scale_strands_together
    assert set(summary.candidates) == {("t", "c")}
    assert summary.candidates[("t", "c")].joint
    summary.load_events()
    assert summary.events(1)[0].start > summary.events(0)[-1].start


def test_scale_together_needs_two_strands(fake_read, raw_events, models):
    read = fake_read(raw_events(hairpin_means(island=(0, 10))))
    summary = _summarize(read, models, SummaryConfig(scale_strands_together=True))

    assert summary.accepted
    assert summary.strand_bounds == StrandBounds(50, 950, 0, 0)
    assert not summary.scale_strands_together
    assert set(summary.candidates) == {("t", "")}


def test_read_id_falls_back_to_file_name(fake_read, raw_events, models):
    read = fake_read(raw_events(hairpin_means()), read_id="")
    summary = _summarize(read, models, name="/data/run1/ch12_read7.fast5")
    assert summary.base_file_name == "ch12_read7"
    assert summary.read_id == "ch12_read7"


def test_max_events_truncates(fake_read, raw_events, models):
    means = np.concatenate([hairpin_means(), np.full(500, 50.0)])
    read = fake_read(raw_events(means))
    summary = _summarize(read, models, SummaryConfig(max_events=1000))
    assert summary.num_events == 1000
    assert summary.strand_bounds == StrandBounds(50, 430, 545, 950)


@pytest.mark.parametrize(
    "kwargs, config, reason",
    [
        ({"sampling_rate": None}, None, RejectReason.MISSING_METADATA),
        ({"sampling_rate": 20000.0}, None, RejectReason.OUT_OF_RANGE_SAMPLING_RATE),
        ({"events": None}, None, RejectReason.MISSING_METADATA),
        ({"fail_open": True}, None, RejectReason.SIGNAL_SOURCE_ERROR),
        ({"fail_read": True}, None, RejectReason.SIGNAL_SOURCE_ERROR),
        ({}, SummaryConfig(min_events=901), RejectReason.INSUFFICIENT_EVENTS),
        ({}, SummaryConfig(trim_margins=(450, 50, 50, 50)), RejectReason.NO_STRAND_DETECTED),
    ],
)
def test_rejected_reads(fake_read, raw_events, models, kwargs, config, reason):
    kwargs.setdefault("events", raw_events(hairpin_means()))
    read = fake_read(**kwargs)
    summary = _summarize(read, models, config)

    assert not summary.accepted
    assert summary.reject_reason == reason
    assert summary.status == reason.value
    assert summary.num_events == 0
    assert summary.candidates == {}
    assert summary.annotation_tag is None

    summary.load_events()
    assert not summary.events_loaded


def test_low_abasic_level_rejected(fake_read, raw_events, models):
    read = fake_read(raw_events(np.full(1000, 0.5)))
    summary = _summarize(read, models)
    assert summary.reject_reason == RejectReason.LOW_ABASIC_LEVEL
    assert summary.num_events == 0


def test_unprocessed_status():
    summary = ReadSummary("x.fast5")
    assert summary.status == "unprocessed"
    assert not summary.accepted
    assert str(summary) == "[base_file_name=x valid=0]"


def test_pick_annotation_tag():
    assert pick_annotation_tag(set(), "Poresummary_") == "Poresummary_000"
    used = {"Poresummary_000", "Poresummary_001", "Other_002"}
    assert pick_annotation_tag(used, "Poresummary_") == "Poresummary_002"
    full = {f"Poresummary_{i:03d}" for i in range(1000)}
    with pytest.raises(AnnotationTagExhaustedError):
        pick_annotation_tag(full, "Poresummary_")


def test_summarize_skips_used_tags(fake_read, raw_events, models):
    read = fake_read(raw_events(hairpin_means()), tags={"Poresummary_000"})
    assert _summarize(read, models).annotation_tag == "Poresummary_001"

    read = fake_read(raw_events(hairpin_means()), tags={f"Poresummary_{i:03d}" for i in range(1000)})
    summary = ReadSummary("r.fast5", opener=read.opener)
    with pytest.raises(AnnotationTagExhaustedError):
        summary.summarize(models)
    assert not summary.events_loaded


def test_tsv_row_for_unselected_models(fake_read, raw_events, models):
    read = fake_read(raw_events(hairpin_means()))
    summary = _summarize(read, models)

    header = tsv_header().split("\t")
    assert header == TSV_COLUMNS
    assert len(header) == 26
    assert header[8] == "template_model_name"
    assert header[17] == "complement_model_name"

    fields = summary.to_tsv_row().split("\t")
    assert len(fields) == 26
    assert fields[:8] == ["read_1", "read-1", "1000", "150", "50", "430", "545", "950"]
    assert fields[8:17] == ["."] + ["0"] * 8
    assert fields[17:] == ["."] + ["0"] * 8


def test_tsv_row_after_model_selection(fake_read, raw_events, models):
    read = fake_read(raw_events(hairpin_means()))
    summary = _summarize(read, models)
    summary.select_model(0, ("t", ""))

    fields = summary.to_tsv_fields()
    assert fields[8:11] == ["t", "5", "50"]
    assert fields[17] == "."

    with pytest.raises(KeyError):
        summary.select_model(1, ("", "nope"))
    with pytest.raises(ValueError):
        summary.select_model(1, ("t", ""))


def test_rejected_read_tsv_row(fake_read, raw_events, models):
    read = fake_read(raw_events(hairpin_means()), sampling_rate=None)
    fields = _summarize(read, models).to_tsv_fields()
    assert len(fields) == 26
    assert fields[1:8] == ["read_1", "0", "0", "0", "0", "0", "0"]


def test_write_back_uses_reserved_tag(fake_read, raw_events, models):
    read = fake_read(raw_events(hairpin_means()))
    summary = _summarize(read, models)
    params = ModelParameters(scale=1.5, shift=2.0)

    summary.write_model_params(0, params)
    summary.write_sequence(0, "read-1_template", "ACGT")
    summary.write_model(1, models["c"])
    summary.load_events()
    summary.write_events(0, summary.events(0))

    kinds = [(kind, st, tag) for kind, st, tag, _ in read.written]
    assert kinds == [
        ("model_params", 0, "Poresummary_000"),
        ("sequence", 0, "Poresummary_000"),
        ("model", 1, "Poresummary_000"),
        ("events", 0, "Poresummary_000"),
    ]
    assert read.written[0][3] is params


def test_write_back_errors_are_logged(fake_read, raw_events, models, caplog):
    read = fake_read(raw_events(hairpin_means()), fail_write=True)
    summary = _summarize(read, models)
    summary.write_model_params(0, ModelParameters(scale=1.0))
    assert read.written == []
    assert "cannot write model parameters" in caplog.text


def test_write_back_without_tag_is_skipped(fake_read, raw_events, models):
    read = fake_read(raw_events(hairpin_means()), sampling_rate=None)
    summary = _summarize(read, models)
    summary.write_sequence(0, "x", "ACGT")
    assert read.written == []


def test_summary_str_and_dict(fake_read, raw_events, models):
    read = fake_read(raw_events(hairpin_means()))
    summary = _summarize(read, models)
    s = str(summary)
    assert s.startswith("[base_file_name=read_1 valid=1 num_events=1000 read_id=read-1")
    assert "strand_bounds=[50,430,545,950]" in s

    d = summary.to_dict()
    assert d["status"] == "accepted"
    assert d["strand_bounds"] == [50, 430, 545, 950]
    assert set(d["candidates"]) == {"t+", "+c"}


def test_base_file_name():
    assert base_file_name("/a/b/read.fast5") == "read"
    assert base_file_name("read.h5") == "read.h5"


def test_scale_together_falls_back_when_strand_filtered_short(fake_read, raw_events, models):
    raw = raw_events(hairpin_means())
    # only 5 complement events pass the noise filter
    raw["stdv"][545:950] = 9.0
    raw["stdv"][545:550] = 1.0
    read = fake_read(raw)
    summary = _summarize(read, models, SummaryConfig(scale_strands_together=True))

    assert summary.accepted
    assert summary.strand_bounds == StrandBounds(50, 430, 545, 950)
    assert not summary.scale_strands_together
    assert set(summary.candidates) == {("t", "")}
    assert summary.candidates[("t", "")].params.scale == pytest.approx(5.0)
    assert summary.time_length[1] == 0.0
