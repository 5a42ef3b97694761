"""End-to-end runs against the mock store."""

from unittest.mock import patch

import pytest
from prometheus_client.exposition import default_handler

from tests.mocks import MockConnectionManager, MockStoreSession

from rainier.cli.commands.run import build_config, run_chain_workload
from rainier.core import PrepareError

ORDERS = "SELECT order_id FROM shop.orders WHERE customer = :customer"
ITEMS = "SELECT sku FROM shop.items WHERE order_id = :order_id"
STOCK = "SELECT qty FROM shop.stock WHERE sku = :sku AND region = :region"


def write_chain(tmp_path, *queries):
    path = tmp_path / "chain.cql"
    path.write_text("# orders, items, stock\n" + "\n".join(queries) + "\n", encoding="utf-8")
    return path


def shop_store():
    """Customers have two orders, each order has three items."""
    return MockStoreSession(
        responses={
            ORDERS: lambda v: [{"order_id": i} for i in (1, 2)],
            ITEMS: lambda v: [{"sku": f"sku-{v['order_id']}-{n}"} for n in range(3)],
            STOCK: [{"qty": 5}],
        },
        param_types={"order_id": "int", "customer": "text"},
    )


@pytest.fixture
def customers(tmp_path):
    path = tmp_path / "customers.txt"
    path.write_text("\n".join(f"customer-{i}" for i in range(20)) + "\n", encoding="utf-8")
    return path


def run(tmp_path, store, customers, **overrides):
    chain_path = write_chain(tmp_path, ORDERS, ITEMS, STOCK)
    overrides.setdefault("iterations", 10)
    config = build_config(
        host="localhost",
        chain_file=chain_path,
        args="region:eu-west",
        argfile=f"customer:{customers}",
        **overrides,
    )
    return run_chain_workload(config, connection_manager=MockConnectionManager(store))


@pytest.mark.integration
class TestEndToEnd:
    """Full runs through configuration, preparation and scheduling."""

    def test_three_level_chain(self, tmp_path, customers):
        store = shop_store()

        summary = run(tmp_path, store, customers, iterations=4)

        assert summary.succeeded
        assert summary.iterations_completed == 4
        assert summary.total_chains == 4
        # 1 order lookup, 2 item lookups, 6 stock lookups per chain
        assert summary.statements_executed == 4 * 9
        assert len(store.executions_of(STOCK)) == 24
        assert all(e.values["region"] == "eu-west" for e in store.executions_of(STOCK))
        assert {e.values["order_id"] for e in store.executions_of(ITEMS)} == {1, 2}

    def test_repeats_count_as_chains(self, tmp_path, customers):
        store = shop_store()

        summary = run(tmp_path, store, customers, iterations=10, min_repeat=2, max_repeat=2)

        assert summary.total_chains == 20
        assert len(store.executions_of(ORDERS)) == 20

    def test_reproducible_across_thread_counts(self, tmp_path, customers):
        drawn = {}
        for threads in (1, 4):
            store = shop_store()
            summary = run(tmp_path, store, customers, iterations=30, threads=threads,
                          min_repeat=1, max_repeat=3, seed_offset=42)
            assert summary.succeeded
            drawn[threads] = (
                summary.total_chains,
                sorted(e.values["customer"] for e in store.executions_of(ORDERS)),
            )

        assert drawn[1] == drawn[4]

    def test_skip_branch_keeps_iterations_alive(self, tmp_path, customers):
        store = shop_store()
        store.fail_when = lambda query, values: query == STOCK and values["sku"].endswith("-0")

        summary = run(tmp_path, store, customers, iterations=5, on_store_error="skip_branch")

        assert summary.iterations_completed == 5
        assert summary.additional_metrics["skipped_branches"] == 5 * 2
        assert summary.additional_metrics["statement_errors"] == 5 * 2

    def test_abort_iteration_records_failures(self, tmp_path, customers):
        store = shop_store()
        store.fail_when = lambda query, values: query == STOCK

        summary = run(tmp_path, store, customers, iterations=5)

        assert not summary.succeeded
        assert summary.iterations_failed == 5
        assert summary.total_chains == 0
        assert len(summary.errors) == 5

    def test_prepare_failure_runs_nothing(self, tmp_path, customers):
        store = shop_store()
        store.fail_prepare.add(STOCK)

        with pytest.raises(PrepareError) as exc_info:
            run(tmp_path, store, customers)

        assert exc_info.value.line_number == 4
        assert store.executions == []

    def test_summary_dict(self, tmp_path, customers):
        summary = run(tmp_path, shop_store(), customers, iterations=3)

        data = summary.to_dict()

        assert data["iterations_requested"] == 3
        assert data["success_rate"] == 1.0
        assert data["error_count"] == 0
        assert set(data["steps"]) == {0, 1, 2}
        assert data["latency_p99"] >= data["latency_p50"] >= 0.0

    def test_pushgateway_credentials_reach_the_push(self, tmp_path, customers, monkeypatch):
        monkeypatch.setenv("RAINIER_PUSHGATEWAY_USERNAME", "pusher")
        monkeypatch.setenv("RAINIER_PUSHGATEWAY_PASSWORD", "secret")

        with patch("rainier.monitoring.exporter.push_to_gateway") as push, \
                patch("rainier.monitoring.exporter.basic_auth_handler") as basic:
            run(tmp_path, shop_store(), customers, iterations=2, pushgateway="gw:9091")
            handler = push.call_args.kwargs["handler"]
            handler("http://gw:9091", "PUT", 5, [], b"")

        assert push.call_args.args == ("gw:9091",)
        assert handler is not default_handler
        assert basic.call_args.args[-2:] == ("pusher", "secret")
