from clipstash.query import Filter


class TestFilter:
    def test_and_combines_params_in_order(self):
        combined = Filter.group_is(2) & Filter.keyword("x")
        assert combined.sql == '("group" = ?) AND (search_text LIKE ? ESCAPE \'\\\')'
        assert combined.params == (2, "%x%")

    def test_or(self):
        combined = Filter.app_in(["A"]) | Filter.older_than(10)
        assert "OR" in combined.sql
        assert combined.params == ("A", 10)

    def test_invert(self):
        assert (~Filter.tag_missing()).sql == "NOT (tag IS NULL)"

    def test_all_of_skips_none(self):
        assert Filter.all_of([None, None]) is None
        single = Filter.all_of([None, Filter.group_is(1)])
        assert single == Filter.group_is(1)

    def test_keyword_escapes_like_wildcards(self):
        assert Filter.keyword("50%_off\\").params == ("%50\\%\\_off\\\\%",)

    def test_membership_dedups(self):
        where = Filter.ids_in([3, 1, 3])
        assert where.sql == "id IN (?, ?)"
        assert where.params == (3, 1)

    def test_empty_membership_matches_nothing(self):
        assert Filter.app_in([]) == Filter.none()

    def test_tag_in_ignores_empty_tag(self):
        assert Filter.tag_in(["", "link"]).params == ("link",)

    def test_timestamp_range(self):
        assert Filter.timestamp_range(10).params == (10,)
        assert Filter.timestamp_range(10, 20).params == (10, 20)
