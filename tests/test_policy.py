from planner.policy import POLICY_PATH, load_policy, policy_path, threshold


def test_repo_policy_loads():
    policy = load_policy()
    assert policy["dti_cap"] == 0.30
    assert policy["default_rates"]["investment"]["regular"] == 9.0
    assert threshold(policy, "payment_change_vnd", 0) == 1_000_000
    assert threshold(policy, "missing", 42) == 42


def test_policy_override(monkeypatch, tmp_path):
    custom = tmp_path / "policy.yaml"
    custom.write_text("dti_cap: 0.4\n", encoding="utf-8")
    monkeypatch.setenv("HOMEPLAN_POLICY", str(custom))
    assert policy_path() == custom
    assert load_policy() == {"dti_cap": 0.4}

    monkeypatch.setenv("HOMEPLAN_POLICY", str(tmp_path / "absent.yaml"))
    assert load_policy() == {}

    monkeypatch.delenv("HOMEPLAN_POLICY")
    assert policy_path() == POLICY_PATH
