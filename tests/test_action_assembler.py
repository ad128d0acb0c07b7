import os
import sys
import unittest


ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from action_assembler import AllowAll, RolePermissions, assemble_actions, build_action_menus, invoke_action


def _actions(menus: list) -> dict:
    return {a["name"]: a for menu in menus for a in menu["actions"]}


class TestActionAssembler(unittest.TestCase):
    def setUp(self) -> None:
        self.record = {"pk": 42, "quantity": 10, "barcode_hash": ""}
        self.viewer = RolePermissions({"id": "u1", "roles": ["stock.view"]})
        self.clerk = RolePermissions({"id": "u2", "roles": ["stock.view", "stock.change"]})

    def test_menu_layout(self) -> None:
        menus = build_action_menus()
        self.assertEqual([m.key for m in menus], ["barcode", "operations", "stock"])
        self.assertEqual([a.name for a in menus[1].actions], ["count", "add", "remove", "transfer"])
        self.assertEqual([a.name for a in menus[2].actions], ["duplicate", "edit", "delete"])

    def test_link_and_unlink_are_exclusive(self) -> None:
        for barcode_hash in ("", None, 0, "abc123"):
            record = dict(self.record, barcode_hash=barcode_hash)
            actions = _actions(assemble_actions(record, AllowAll()))
            self.assertNotEqual(actions["link_barcode"]["visible"], actions["unlink_barcode"]["visible"])
            self.assertEqual(actions["unlink_barcode"]["visible"], bool(barcode_hash))

    def test_denied_actions_disabled(self) -> None:
        actions = _actions(assemble_actions(self.record, self.viewer))
        self.assertTrue(actions["view_barcode"]["enabled"])
        self.assertTrue(actions["add"]["visible"])
        self.assertFalse(actions["add"]["enabled"])
        self.assertFalse(actions["delete"]["enabled"])

    def test_denied_actions_hidden_when_requested(self) -> None:
        actions = _actions(assemble_actions(self.record, self.viewer, hide_denied=True))
        self.assertFalse(actions["add"]["visible"])
        self.assertTrue(actions["view_barcode"]["visible"])

    def test_bare_role_and_superuser_grants(self) -> None:
        self.assertTrue(RolePermissions({"roles": ["stock"]}).check("stock", "delete"))
        self.assertTrue(RolePermissions({"is_superuser": True}).check("stock", "delete"))
        self.assertFalse(RolePermissions(None).check("stock", "view"))


class TestInvokeAction(unittest.TestCase):
    def setUp(self) -> None:
        self.calls = []
        self.handlers = {"add": lambda: self.calls.append("add") or "opened", "link_barcode": lambda: "linked"}
        self.clerk = RolePermissions({"roles": ["stock.view", "stock.change"]})

    def test_invokes_bound_handler(self) -> None:
        result = invoke_action("add", {"pk": 42}, self.clerk, self.handlers)
        self.assertTrue(result["ok"])
        self.assertTrue(result["invoked"])
        self.assertEqual(result["result"], "opened")
        self.assertEqual(self.calls, ["add"])

    def test_noop_without_identity(self) -> None:
        result = invoke_action("add", {"quantity": 1}, self.clerk, self.handlers)
        self.assertTrue(result["ok"])
        self.assertFalse(result["invoked"])
        self.assertEqual(self.calls, [])

    def test_forbidden(self) -> None:
        viewer = RolePermissions({"roles": ["stock.view"]})
        result = invoke_action("add", {"pk": 42}, viewer, self.handlers)
        self.assertFalse(result["ok"])
        self.assertEqual(result["errors"][0]["code"], "ACTION_FORBIDDEN")
        self.assertEqual(self.calls, [])

    def test_hidden_action_refused(self) -> None:
        result = invoke_action("link_barcode", {"pk": 42, "barcode_hash": "abc"}, self.clerk, self.handlers)
        self.assertEqual(result["errors"][0]["code"], "ACTION_HIDDEN")

    def test_unknown_and_unbound(self) -> None:
        self.assertEqual(invoke_action("explode", {"pk": 1}, AllowAll(), {})["errors"][0]["code"], "ACTION_UNKNOWN")
        self.assertEqual(invoke_action("remove", {"pk": 1}, AllowAll(), {})["errors"][0]["code"], "ACTION_HANDLER_MISSING")


if __name__ == "__main__":
    unittest.main()
