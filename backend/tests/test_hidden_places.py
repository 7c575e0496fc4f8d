from repositories import HiddenPlacesRepository


def test_hide_list_and_unhide(session_factory):
    repo = HiddenPlacesRepository()
    with session_factory() as session:
        assert repo.hide(session, "d1", "Neptune Oyster")
        assert repo.hide(session, "d1", "Row 34")
        assert not repo.hide(session, "d1", "  neptune oyster ")

        assert repo.list_names(session, "d1") == ["Neptune Oyster", "Row 34"]
        assert repo.normalized_names(session, "d1") == {"neptune oyster", "row 34"}
        assert repo.is_hidden(session, "d1", "NEPTUNE OYSTER")
        assert not repo.is_hidden(session, "d2", "Neptune Oyster")

        assert repo.unhide(session, "d1", "neptune oyster")
        assert not repo.unhide(session, "d1", "neptune oyster")
        assert repo.list_names(session, "d1") == ["Row 34"]


def test_blank_names_are_ignored(session_factory):
    repo = HiddenPlacesRepository()
    with session_factory() as session:
        assert not repo.hide(session, "d1", "   ")
        assert repo.list_names(session, "d1") == []
