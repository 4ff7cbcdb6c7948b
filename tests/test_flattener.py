import unittest
from jsoncsv.flattener.engine import flatten, expand, array_keys, array_items


class TestFlatten(unittest.TestCase):
    def test_flat_object_unchanged(self):
        obj = {"id": 1, "name": "Ann", "active": True, "score": 2.5, "note": None}
        self.assertEqual(flatten(obj), obj)

    def test_nested_object(self):
        self.assertEqual(flatten({"a": {"b": 1}}), {"a__b": 1})
        self.assertEqual(flatten({"a": {"b": {"c": "x"}}, "d": 2}), {"a__b__c": "x", "d": 2})

    def test_prefix(self):
        self.assertEqual(flatten({"city": "Riga"}, "address"), {"address__city": "Riga"})

    def test_array_of_scalars_kept_as_json_text(self):
        self.assertEqual(flatten({"tags": ["x", "y"]}), {"tags": '["x","y"]'})
        self.assertEqual(flatten({"n": [1, 2.5, None, True]}), {"n": "[1,2.5,null,true]"})

    def test_empty_array_kept_as_text(self):
        self.assertEqual(flatten({"items": []}), {"items": "[]"})

    def test_non_ascii_array_text(self):
        self.assertEqual(flatten({"t": ["привет"]}), {"t": '["привет"]'})

    def test_array_of_objects_unrolled(self):
        flat = flatten({"address": [{"city": "A"}, {"city": "B", "geo": {"lat": 1}}]})
        self.assertEqual(flat, {
            "address__0__city": "A",
            "address__1__city": "B",
            "address__1__geo__lat": 1,
        })

    def test_first_element_gates_unrolling(self):
        flat = flatten({"mix": [{"a": 1}, "x", 3]})
        self.assertEqual(flat, {"mix__0__a": 1})
        self.assertEqual(flatten({"mix": ["x", {"a": 1}]}), {"mix": '["x",{"a":1}]'})

    def test_none_and_non_objects_give_empty(self):
        self.assertEqual(flatten(None), {})
        self.assertEqual(flatten(5), {})
        self.assertEqual(flatten("text"), {})
        self.assertEqual(flatten({}), {})

    def test_collision_later_wins(self):
        flat = flatten({"a__b": 1, "a": {"b": 2}})
        self.assertEqual(flat, {"a__b": 2})


class TestExpand(unittest.TestCase):
    def test_flat_object_single_row(self):
        obj = {"id": 7, "name": "x"}
        self.assertEqual(expand([obj]), [obj])

    def test_nested_array_one_row_per_element(self):
        rows = expand([{"name": "p", "items": [{"id": 1}, {"id": 2}]}])
        self.assertEqual(rows, [{"name": "p", "id": 1}, {"name": "p", "id": 2}])

    def test_nested_fields_inside_array_elements(self):
        rows = expand([{"o": 1, "lines": [{"sku": "a", "price": {"amount": 3}}]}])
        self.assertEqual(rows, [{"o": 1, "sku": "a", "price__amount": 3}])

    def test_input_order_preserved(self):
        rows = expand([
            {"n": 1, "items": [{"id": "a"}, {"id": "b"}]},
            {"n": 2},
            {"n": 3, "items": [{"id": "c"}]},
        ])
        self.assertEqual([(r["n"], r.get("id")) for r in rows], [(1, "a"), (1, "b"), (2, None), (3, "c")])

    def test_multiple_arrays_add_up_not_cross_product(self):
        rows = expand([{
            "id": 1,
            "a": [{"x": 1}, {"x": 2}],
            "b": [{"y": 1}, {"y": 2}, {"y": 3}],
        }])
        self.assertEqual(len(rows), 5)
        self.assertEqual(rows[0], {"id": 1, "x": 1})
        self.assertEqual(rows[1], {"id": 1, "x": 2})
        self.assertEqual(rows[2], {"id": 1, "y": 1})
        self.assertEqual(rows[4], {"id": 1, "y": 3})
        for r in rows:
            self.assertFalse(any(k.startswith(("a__", "b__")) for k in r))

    def test_array_field_overrides_base(self):
        rows = expand([{"id": 1, "items": [{"id": 9}]}])
        self.assertEqual(rows, [{"id": 9}])

    def test_nested_array_under_object(self):
        rows = expand([{"order": {"no": 5, "lines": [{"q": 1}, {"q": 2}]}}])
        self.assertEqual(rows, [{"order__no": 5, "q": 1}, {"order__no": 5, "q": 2}])

    def test_deeper_array_keeps_inner_index(self):
        rows = expand([{"a": [{"b": [{"c": 1}, {"c": 2}]}]}])
        self.assertEqual(rows, [{"b__0__c": 1, "b__1__c": 2}])

    def test_empty_object_yields_one_empty_row(self):
        self.assertEqual(expand([{}]), [{}])

    def test_empty_and_invalid_input(self):
        self.assertEqual(expand([]), [])
        self.assertEqual(expand(None), [])
        self.assertEqual(expand({"a": 1}), [])

    def test_scalar_elements_yield_empty_rows(self):
        self.assertEqual(expand([1, "x"]), [{}, {}])

    def test_progress_reported_monotonically(self):
        seen = []
        expand([{"i": i} for i in range(7)], on_progress=seen.append)
        self.assertEqual(seen, sorted(set(seen)))
        self.assertEqual(seen[-1], 100.0)


class TestArrayHelpers(unittest.TestCase):
    def test_array_keys_in_discovery_order(self):
        flat = {"z__0__a": 1, "name": "n", "a__1__b": 2, "z__1__a": 3}
        self.assertEqual(array_keys(flat), ["z", "a"])

    def test_array_keys_shortest_prefix(self):
        self.assertEqual(array_keys({"a__0__b__1__c": 1}), ["a"])

    def test_array_keys_ignore_plain_keys(self):
        self.assertEqual(array_keys({"a__b": 1, "x__0": 2}), [])

    def test_array_items_sparse_indices_skipped(self):
        flat = {"items__0__id": 1, "items__2__id": 3, "other": True}
        self.assertEqual(array_items(flat, "items"), [{"id": 1}, {"id": 3}])

    def test_array_items_numeric_order(self):
        flat = {"items__10__id": 10, "items__2__id": 2}
        self.assertEqual(array_items(flat, "items"), [{"id": 2}, {"id": 10}])

    def test_array_key_with_regex_characters(self):
        flat = {"a.b(c)__0__x": 1}
        self.assertEqual(array_keys(flat), ["a.b(c)"])
        self.assertEqual(array_items(flat, "a.b(c)"), [{"x": 1}])


if __name__ == '__main__':
    unittest.main()
