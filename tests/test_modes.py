import pytest

from rpcmesh.modes import FailMode, SelectMode


@pytest.mark.parametrize("mode", list(FailMode))
def test_fail_mode_label_round_trip(mode):
    assert FailMode.parse(str(mode)) is mode


@pytest.mark.parametrize(
    "mode",
    [m for m in SelectMode if m is not SelectMode.SELECT_BY_USER],
)
def test_select_mode_label_round_trip(mode):
    assert SelectMode.parse(mode.label) is mode


def test_fail_mode_values_are_ordered():
    names = ["Failover", "Failfast", "Failtry", "Failbackup"]
    assert [int(FailMode.parse(name)) for name in names] == [0, 1, 2, 3]


def test_fail_mode_labels():
    assert FailMode.parse("Failbackup") is FailMode.FAILBACKUP
    assert str(FailMode.FAILTRY) == "Failtry"


def test_select_mode_labels():
    assert SelectMode.parse("WeightedRoundRobin") is SelectMode.WEIGHTED_ROUND_ROBIN
    assert str(SelectMode.CLOSEST) == "Closest"
    assert int(SelectMode.SELECT_BY_USER) == 1000


def test_fail_mode_unknown_name():
    with pytest.raises(ValueError, match="does not belong to FailMode values"):
        FailMode.parse("Failsometimes")


def test_select_mode_unknown_name():
    with pytest.raises(ValueError, match="does not belong to SelectMode values"):
        SelectMode.parse("SelectByUser")