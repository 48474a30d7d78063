from datetime import date

from investments.repository import InvestmentsRepository
from shared.models import Asset, InvestmentsFilters, Operation, PositionSnapshot, Transaction


def _repo(tmp_path) -> InvestmentsRepository:
    return InvestmentsRepository(str(tmp_path / "investments.db"))


def _tx(asset_id: str, day: str, operation: Operation = Operation.BUY, **extra) -> Transaction:
    return Transaction(
        user_id="u1",
        asset_id=asset_id,
        reference_date=date.fromisoformat(day),
        operation=operation,
        quantity=1,
        price=10,
        **extra,
    )


def test_asset_upsert_filter_and_search(tmp_path):
    repo = _repo(tmp_path)
    repo.upsert_asset(Asset(user_id="u1", asset_id="petr4", name="Petrobras", ticker="PETR4", asset_class="equity", tags=["dividendos"]))
    repo.upsert_asset(Asset(user_id="u1", asset_id="cdb", name="CDB Banco", asset_class="fixed_income", account_id="acc-1"))
    repo.upsert_asset(Asset(user_id="u2", asset_id="other", name="Outro", asset_class="equity"))

    assert {a.asset_id for a in repo.list_assets("u1")} == {"petr4", "cdb"}
    assert [a.asset_id for a in repo.list_assets("u1", InvestmentsFilters(asset_classes=["fixed_income"]))] == ["cdb"]
    assert [a.asset_id for a in repo.list_assets("u1", InvestmentsFilters(tags=["dividendos"]))] == ["petr4"]
    assert [a.asset_id for a in repo.search_assets("u1", "petr")] == ["petr4"]

    renamed = repo.get_asset("u1", "cdb").model_copy(update={"name": "CDB Renomeado"})
    repo.upsert_asset(renamed)
    assert repo.get_asset("u1", "cdb").name == "CDB Renomeado"
    assert repo.get_asset("u2", "cdb") is None
    repo.close()


def test_transactions_are_returned_in_replay_order(tmp_path):
    repo = _repo(tmp_path)
    first = repo.insert_investment_transaction(_tx("petr4", "2024-02-01"))
    second = repo.insert_investment_transaction(_tx("petr4", "2024-01-01"))
    third = repo.insert_investment_transaction(_tx("petr4", "2024-02-01", Operation.SELL))

    assert first.sequence < third.sequence
    assert first.created_at is not None

    ordered = repo.list_transactions("u1")
    assert [tx.sequence for tx in ordered] == [second.sequence, first.sequence, third.sequence]

    windowed = repo.list_transactions("u1", start=date(2024, 1, 15), end=date(2024, 2, 1))
    assert [tx.sequence for tx in windowed] == [first.sequence, third.sequence]
    repo.close()


def test_latest_position_per_asset_respects_end(tmp_path):
    repo = _repo(tmp_path)
    for day, quantity in (("2024-01-01", 1), ("2024-02-01", 2), ("2024-03-01", 3)):
        repo.insert_position_snapshot(
            PositionSnapshot(user_id="u1", asset_id="petr4", reference_date=date.fromisoformat(day), quantity=quantity)
        )

    latest = repo.list_latest_positions_by_user("u1", end=date(2024, 2, 15))
    assert [(p.asset_id, p.quantity) for p in latest] == [("petr4", 2)]
    assert repo.list_latest_positions_by_user("u1")[0].quantity == 3
    repo.close()


def test_delete_asset_cascades(tmp_path):
    repo = _repo(tmp_path)
    repo.upsert_asset(Asset(user_id="u1", asset_id="petr4", name="Petrobras", asset_class="equity"))
    repo.insert_investment_transaction(_tx("petr4", "2024-01-01"))
    repo.insert_position_snapshot(PositionSnapshot(user_id="u1", asset_id="petr4", reference_date=date(2024, 1, 1)))

    assert repo.delete_asset("u1", "petr4") is True
    assert repo.get_asset("u1", "petr4") is None
    assert repo.list_transactions("u1") == []
    assert repo.list_latest_positions_by_user("u1") == []
    assert repo.delete_asset("u1", "petr4") is False
    repo.close()
