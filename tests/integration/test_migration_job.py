"""
Integration Tests for MigrationJob

Runs the full catalog → copy → finalize flow against fake source and target
databases and checks the properties a migration must hold:
- Row-count parity for every completed table
- Binding by column name regardless of source column order
- LOB values transferred byte-for-byte
- Re-running into a populated target aborts the table (copies are not idempotent)
- Progress never exceeds the total and reaches it when nothing aborts
- Job-fatal failures surface as MigrationAbortedError
"""

import io
import logging

import pyodbc
import pytest

from data_migrator.config.config_manager import MigrationParameters
from data_migrator.exceptions import CatalogError, DatabaseConnectionError, MigrationAbortedError
from data_migrator.models import ConnectionProfile, TableStatus
from data_migrator.monitoring.performance_monitor import PerformanceMonitor
from data_migrator.processing.migration_job import MigrationJob
from helpers import FakeColumn, FakeDatabase, FakeTable, odbc_error


CUSTOMER = [FakeColumn("ID", pyodbc.SQL_INTEGER, 10), FakeColumn("NAME", pyodbc.SQL_VARCHAR, 40)]
ORDERS = [FakeColumn("ORDER_ID", pyodbc.SQL_INTEGER, 10), FakeColumn("CUSTOMER_ID", pyodbc.SQL_INTEGER, 10),
          FakeColumn("NOTES", pyodbc.SQL_WLONGVARCHAR, 0), FakeColumn("RECEIPT", pyodbc.SQL_LONGVARBINARY, 0)]


@pytest.fixture
def parameters():
    return MigrationParameters(concurrency_cap=2, fetch_size=3, session_retry_delay_seconds=0,
                               connect_attempts=1, connect_retry_delay_seconds=0, progress_line_interval=5)


@pytest.fixture
def populated(source_db, target_db):
    """Source with five tables; target shaped like the source for the copyable ones."""
    customers = [(i, f"Customer {i}") for i in range(1, 8)]
    orders = [(100 + i, (i % 7) + 1, "note " * (i * 500), bytes([i % 256]) * (i * 1000)) for i in range(1, 11)]

    source_db.add_table(FakeTable("BIN$TEMP", CUSTOMER, customers[:2]))
    source_db.add_table(FakeTable("DATABASECHANGELOG", CUSTOMER, customers[:3]))
    source_db.add_table(FakeTable("SEQ_ID", [FakeColumn("ID", pyodbc.SQL_BIGINT, 19, auto_increment=True)],
                                  [(1,)]))
    source_db.add_table(FakeTable("CUSTOMER", list(reversed(CUSTOMER)), [(n, i) for i, n in customers]))
    source_db.add_table(FakeTable("ORDERS", ORDERS, orders))
    source_db.add_table(FakeTable("EMPTY", CUSTOMER))

    for name in ("BIN$TEMP", "DATABASECHANGELOG", "SEQ_ID"):
        target_db.add_table(FakeTable(name, CUSTOMER))
    target_db.add_table(FakeTable("CUSTOMER", CUSTOMER, primary_key="ID"))
    target_db.add_table(FakeTable("ORDERS", ORDERS, primary_key="ORDER_ID"))
    target_db.add_table(FakeTable("EMPTY", CUSTOMER))
    return customers, orders


def make_job(source_profile, target_profile, parameters, writer=None):
    return MigrationJob(source_profile, target_profile, parameters=parameters,
                        writer=writer or io.StringIO(), interactive=False,
                        monitor=PerformanceMonitor(sample_interval_seconds=0.01))


class TestMigrationJob:

    def test_full_copy_parity(self, populated, source_profile, target_profile, parameters, target_db, fake_server):
        customers, orders = populated
        writer = io.StringIO()
        job = make_job(source_profile, target_profile, parameters, writer)

        result = job.run()

        assert result.tables_planned == 3
        assert result.total_row_count == 17
        assert {r.table_name: r.status for r in result.table_results} == {
            "CUSTOMER": TableStatus.COMPLETED,
            "ORDERS": TableStatus.COMPLETED,
            "EMPTY": TableStatus.COMPLETED,
        }
        assert result.rows_copied == 17
        assert result.rows_lost == 0
        assert sorted(target_db.table("CUSTOMER").rows) == customers
        assert sorted(target_db.table("ORDERS").rows) == orders
        assert target_db.table("SEQ_ID").rows == []
        assert fake_server.open_connections == 0

        snapshot = job.progress.snapshot()
        assert snapshot.copied_row_count == snapshot.total_row_count == 17
        assert writer.getvalue().splitlines()[-1] == "(100)% 17 of 17 records"

    def test_lobs_transferred_byte_for_byte(self, populated, source_profile, target_profile, parameters,
                                            target_db):
        _, orders = populated

        make_job(source_profile, target_profile, parameters).run()

        copied = {row[0]: row for row in target_db.table("ORDERS").rows}
        for order in orders:
            assert copied[order[0]][2] == order[2]
            assert copied[order[0]][3] == order[3]
            assert isinstance(copied[order[0]][3], bytes)

    def test_rerun_aborts_populated_tables(self, populated, source_profile, target_profile, parameters,
                                           target_db):
        make_job(source_profile, target_profile, parameters).run()

        second = make_job(source_profile, target_profile, parameters).run()

        statuses = {r.table_name: r.status for r in second.table_results}
        assert statuses["CUSTOMER"] is TableStatus.ABORTED
        assert statuses["ORDERS"] is TableStatus.ABORTED
        assert sorted(second.aborted_tables) == ["CUSTOMER", "ORDERS"]
        # Nothing was duplicated
        assert len(target_db.table("CUSTOMER").rows) == 7
        assert len(target_db.table("ORDERS").rows) == 10

    def test_progress_stays_below_total_when_tables_abort(self, populated, source_profile, target_profile,
                                                          parameters, target_db):
        target_db.table("CUSTOMER").rows.append((1, "Already there"))
        job = make_job(source_profile, target_profile, parameters)

        result = job.run()

        assert result.aborted_tables == ["CUSTOMER"]
        snapshot = job.progress.snapshot()
        assert snapshot.copied_row_count < snapshot.total_row_count
        assert result.rows_copied + result.rows_lost == result.rows_attempted

    def test_parameter_mismatch_rows_counted_as_lost(self, populated, source_profile, target_profile,
                                                     parameters, target_db):
        def reject_odd_orders(params):
            if params[0] % 2:
                return odbc_error(pyodbc.Error, "07002", "COUNT field incorrect", 0)
            return None

        target_db.insert_hooks["ORDERS"] = reject_odd_orders

        result = make_job(source_profile, target_profile, parameters).run()

        orders = next(r for r in result.table_results if r.table_name == "ORDERS")
        assert orders.status is TableStatus.COMPLETED
        assert (orders.rows_copied, orders.rows_lost) == (5, 5)
        assert result.rows_lost == 5

    @pytest.mark.parametrize("policy", ["queue", "inline"])
    def test_dispatch_policies_copy_everything(self, populated, source_profile, target_profile, policy,
                                               target_db):
        parameters = MigrationParameters(concurrency_cap=1, dispatch_policy=policy, poll_interval_seconds=0.01,
                                         connect_attempts=1, session_retry_delay_seconds=0)

        result = make_job(source_profile, target_profile, parameters).run()

        assert result.rows_copied == 17
        assert result.performance_metrics["custom_metrics"]["peak_concurrency"] <= 2

    def test_decode_failure_is_contained_to_its_table(self, populated, source_profile, target_profile,
                                                      target_db):
        parameters = MigrationParameters(concurrency_cap=1, connect_attempts=1, session_retry_delay_seconds=0)
        target_db.insert_hooks["CUSTOMER"] = lambda params: UnicodeDecodeError(
            "utf-8", b"\xff", 0, 1, "invalid start byte")
        job = make_job(source_profile, target_profile, parameters)

        result = job.run()

        statuses = {r.table_name: r.status for r in result.table_results}
        assert statuses == {"CUSTOMER": TableStatus.ABORTED, "ORDERS": TableStatus.COMPLETED,
                            "EMPTY": TableStatus.COMPLETED}
        assert len(target_db.table("ORDERS").rows) == 10
        assert result.rows_lost == 1
        assert not job.monitor.is_monitoring

    def test_performance_report_logged(self, populated, source_profile, target_profile, parameters, caplog):
        with caplog.at_level(logging.INFO, logger="data_migrator.monitoring.performance_monitor"):
            make_job(source_profile, target_profile, parameters).run()

        assert "Migration finished in" in caplog.text
        assert "Rows: 17 copied, 0 lost" in caplog.text


class TestJobFatal:

    def test_catalog_failure_aborts_job(self, populated, source_profile, target_profile, parameters, source_db):
        source_db.fail_count_for.add("ORDERS")
        job = make_job(source_profile, target_profile, parameters)

        with pytest.raises(CatalogError):
            job.run()

        assert not job.monitor.is_monitoring

    def test_unreachable_target_aborts_job(self, fake_server, source_db, source_profile, parameters):
        source_db.add_table(FakeTable("CUSTOMER", CUSTOMER, [(1, "a")]))
        unknown = ConnectionProfile(driver_id="ODBC Driver 17 for SQL Server", address="nowhere", name="target")

        with pytest.raises(DatabaseConnectionError) as excinfo:
            make_job(source_profile, unknown, parameters).run()

        assert isinstance(excinfo.value, MigrationAbortedError)

    def test_introspection_failure_aborts_job(self, populated, source_profile, target_profile, parameters,
                                              target_db, fake_server):
        target_db.fail_projection_for.add("ORDERS")

        with pytest.raises(MigrationAbortedError):
            make_job(source_profile, target_profile, parameters).run()

        assert fake_server.open_connections == 0


class TestEmbeddedTarget:

    def test_final_checkpoint(self, fake_server, source_db, source_profile, parameters):
        target_profile = ConnectionProfile(driver_id="HSQLDB", address="/data/target", schema_name="PUBLIC",
                                           name="target")
        target = fake_server.register(target_profile, FakeDatabase(driver_name="hsqldb.so"))
        source_db.add_table(FakeTable("CUSTOMER", CUSTOMER, [(1, "a"), (2, "b")]))
        target.add_table(FakeTable("CUSTOMER", CUSTOMER))

        result = make_job(source_profile, target_profile, parameters).run()

        assert result.rows_copied == 2
        # One checkpoint after the table, one when the job finalizes
        assert target.statements.count("CHECKPOINT") == 2
        assert "SET FILES LOG FALSE" in target.statements
