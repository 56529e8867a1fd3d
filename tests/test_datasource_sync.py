from unittest.mock import MagicMock

import pytest
import requests
from authlib.jose import jwt

from datasource_sync import DatasourceProvisioner
from grafana_client import GrafanaClient
from sync_errors import ErrorKind
from sync_models import AdminMembershipCache, DashboardOrg, DatasourceTemplate
from conftest import grafana_error, make_response


@pytest.fixture
def grafana():
    g = MagicMock(spec=GrafanaClient)
    g.list_orgs.return_value = [DashboardOrg(1, "Main Org."), DashboardOrg(5, "Acme")]
    g.list_datasources.return_value = []
    return g


@pytest.fixture
def cache():
    return AdminMembershipCache()


@pytest.fixture
def provisioner(grafana, cache):
    return DatasourceProvisioner(grafana, "admin", "jwt-secret", "HS256", cache=cache)


def created(grafana):
    return [(c.args[0], c.args[1]) for c in grafana.create_datasource.call_args_list]


def test_creates_datasource_per_org(provisioner, grafana):
    result = provisioner.run()

    assert [org_id for org_id, _ in created(grafana)] == [1, 5]
    org_id, payload = created(grafana)[1]
    assert payload["name"] == "ScreepsPlus-Graphite"
    assert payload["type"] == "graphite"
    assert payload["access"] == "direct"
    assert payload["basicAuth"] is True
    assert payload["basicAuthUser"] == "acme"
    claims = jwt.decode(payload["basicAuthPassword"], "jwt-secret")
    assert claims["username"] == "acme"
    assert claims["scope"] == ["read:stats"]
    assert result.created == 2


def test_switches_org_before_listing(provisioner, grafana):
    order = []
    grafana.switch_org.side_effect = lambda org_id: order.append(("switch", org_id))
    grafana.list_datasources.side_effect = lambda org_id: order.append(("list", org_id)) or []

    provisioner.run()

    assert order == [("switch", 1), ("list", 1), ("switch", 5), ("list", 5)]


def test_existing_datasource_is_not_touched(provisioner, grafana):
    grafana.list_orgs.return_value = [DashboardOrg(5, "acme")]
    grafana.list_datasources.return_value = [{"id": 9, "name": "ScreepsPlus-Graphite", "url": "http://old"}]

    result = provisioner.run()

    grafana.create_datasource.assert_not_called()
    assert result.skipped == 1


def test_name_match_is_case_sensitive(provisioner, grafana):
    grafana.list_orgs.return_value = [DashboardOrg(5, "acme")]
    grafana.list_datasources.return_value = [{"name": "screepsplus-graphite"}]

    provisioner.run()

    assert len(created(grafana)) == 1


def test_second_run_creates_nothing(provisioner, grafana):
    provisioner.run()
    grafana.list_datasources.return_value = [{"name": "ScreepsPlus-Graphite"}]
    grafana.create_datasource.reset_mock()

    provisioner.run()

    grafana.create_datasource.assert_not_called()


def test_admin_enrollment_is_cached(provisioner, grafana, cache):
    provisioner.run()
    provisioner.run()

    assert grafana.add_org_user.call_count == 2
    grafana.add_org_user.assert_any_call(5, "admin", role="Admin")
    assert cache.is_admin(1) and cache.is_admin(5)


def test_failed_enrollment_is_retried_next_run(provisioner, grafana, cache):
    grafana.list_orgs.return_value = [DashboardOrg(5, "acme")]
    grafana.add_org_user.side_effect = grafana_error(ErrorKind.VALIDATION, 409)

    provisioner.run()
    provisioner.run()

    assert grafana.add_org_user.call_count == 2
    assert not cache.is_admin(5)
    # provisioning carries on regardless
    assert grafana.create_datasource.call_count == 2


def test_creation_failure_does_not_stop_other_orgs(provisioner, grafana):
    grafana.create_datasource.side_effect = [grafana_error(ErrorKind.VALIDATION, 400, {"message": "bad"}), {}]

    result = provisioner.run()

    assert result.failed == 1
    assert result.created == 1
    assert grafana.create_datasource.call_count == 2


def test_creation_failure_does_not_stop_other_templates(grafana, cache):
    templates = [
        DatasourceTemplate(name="first", type="graphite", url="http://a"),
        DatasourceTemplate(name="second", type="graphite", url="http://b"),
    ]
    grafana.list_orgs.return_value = [DashboardOrg(5, "acme")]
    grafana.create_datasource.side_effect = [grafana_error(ErrorKind.TRANSPORT, 502), {}]
    provisioner = DatasourceProvisioner(grafana, "admin", "jwt-secret", cache=cache, templates=templates)

    result = provisioner.run()

    assert [p["name"] for _, p in created(grafana)] == ["first", "second"]
    assert result.created == 1 and result.failed == 1


def test_switch_failure_skips_only_that_org(provisioner, grafana):
    grafana.switch_org.side_effect = [grafana_error(ErrorKind.TRANSPORT, 500), None]

    result = provisioner.run()

    assert [org_id for org_id, _ in created(grafana)] == [5]
    assert result.failed == 1


def test_org_listing_failure_is_contained(provisioner, grafana):
    grafana.list_orgs.side_effect = grafana_error(ErrorKind.TRANSPORT, 503)

    result = provisioner.run()

    assert result.orgs == 0
    grafana.create_datasource.assert_not_called()


def test_non_json_grafana_body_is_contained(cache):
    session = MagicMock(spec=requests.Session)
    session.headers = {}
    session.request.return_value = make_response(200, text="<html>login</html>")
    grafana = GrafanaClient("http://grafana.test", "admin", "pw", session=session)

    result = DatasourceProvisioner(grafana, "admin", "jwt-secret", cache=cache).run()

    assert result.orgs == 0
    assert result.created == 0


def test_non_json_datasource_listing_skips_org(provisioner, grafana):
    grafana.list_datasources.side_effect = [
        grafana_error(ErrorKind.TRANSPORT, 200, "<html>login</html>"),
        [],
    ]

    result = provisioner.run()

    assert [org_id for org_id, _ in created(grafana)] == [5]
    assert result.failed == 1


def test_signing_failure_is_per_template(grafana, cache):
    provisioner = DatasourceProvisioner(grafana, "admin", "jwt-secret", "RS256", cache=cache)

    result = provisioner.run()

    grafana.create_datasource.assert_not_called()
    assert result.orgs == 2
    assert result.failed == 2
