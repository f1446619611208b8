from nool.common import join_id, split_id


def test_join_id() -> None:
    assert join_id("", "A") == "A"
    assert join_id("root", "A") == "root/A"
    assert join_id("root/A", "f.tex") == "root/A/f.tex"


def test_split_id() -> None:
    assert split_id("root/A/f.tex") == ("root/A", "f.tex")
    assert split_id("root/A") == ("root", "A")
    assert split_id("root") == ("", "root")
