"""
Tests for windowed stats, current status and efficiency analytics.

The database is mocked at the session level: aggregate queries return
stub rows, and the low-efficiency stream yields stub rows from an async
iterator. Cache helpers are patched in the analytics module namespace.

CHANGELOG:
- 2026-10-17: Pin the joins that drop unmapped vehicles (STORY-110)
- 2026-10-15: Add low-efficiency streaming tests (STORY-108)
- 2026-10-14: Add efficiency ratio tests (STORY-107)
- 2026-10-14: Initial creation (STORY-106)

TODO:
- None
"""

from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pytest

from helpers import T0, scalars_result, stats_result
from telemetry_engine.db.models import MeterCurrentState, VehicleCurrentState
from telemetry_engine.exceptions import (
    DeviceUnknown,
    DivisionUndefined,
    NoActiveMapping,
    NoDataInWindow,
    ValidationRejected,
)
from telemetry_engine.models import CurrentState, DeviceClass, MeterMetrics
from telemetry_engine.services.analytics import (
    get_current_status,
    get_efficiency_ratio,
    get_windowed_stats,
    iter_low_efficiency_vehicles,
)

END = T0 + timedelta(hours=1)
_ANALYTICS = "telemetry_engine.services.analytics"


class _StreamRows:
    """Async-iterable stand-in for an AsyncResult."""

    def __init__(self, rows: list) -> None:
        self._rows = rows

    def __aiter__(self):
        return self._gen()

    async def _gen(self):
        for row in self._rows:
            yield row


def _sql_and_params(session: AsyncMock, call: int = 0) -> tuple[str, dict]:
    args = session.execute.call_args_list[call][0]
    return str(args[0]), args[1]


class TestWindowedStats:
    """get_windowed_stats aggregates one metric over [start, end)."""

    @pytest.mark.asyncio()
    async def test_default_metric_is_energy(self, mock_db_session: AsyncMock) -> None:
        mock_db_session.execute.return_value = stats_result(3, 12.0, 4.0, 1.0, 7.0)

        stats = await get_windowed_stats(mock_db_session, "M1", DeviceClass.METER, T0, END)

        assert stats.sum == 12.0
        assert stats.avg == 4.0
        assert stats.min == 1.0
        assert stats.max == 7.0
        assert stats.count == 3
        sql, params = _sql_and_params(mock_db_session)
        assert "SUM(energy_consumed_kwh)" in sql
        assert "FROM meter_history" in sql
        assert "ts >= :start AND ts < :end" in sql
        assert params == {"device_id": "M1", "start": T0, "end": END}

    @pytest.mark.asyncio()
    async def test_explicit_vehicle_metric(self, mock_db_session: AsyncMock) -> None:
        mock_db_session.execute.return_value = stats_result(2, 150.0, 75.0, 70.0, 80.0)

        stats = await get_windowed_stats(
            mock_db_session, "V1", DeviceClass.VEHICLE, T0, END, metric="state_of_charge_pct",
        )

        assert stats.avg == 75.0
        sql, _ = _sql_and_params(mock_db_session)
        assert "AVG(state_of_charge_pct)" in sql
        assert "FROM vehicle_history" in sql

    @pytest.mark.asyncio()
    async def test_empty_window_raises(self, mock_db_session: AsyncMock) -> None:
        mock_db_session.execute.return_value = stats_result(0)

        with pytest.raises(NoDataInWindow):
            await get_windowed_stats(mock_db_session, "M1", DeviceClass.METER, T0, END)

    @pytest.mark.asyncio()
    async def test_unknown_metric_rejected(self, mock_db_session: AsyncMock) -> None:
        with pytest.raises(ValidationRejected, match="voltage_v"):
            await get_windowed_stats(
                mock_db_session, "V1", DeviceClass.VEHICLE, T0, END, metric="voltage_v",
            )
        mock_db_session.execute.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_inverted_window_rejected(self, mock_db_session: AsyncMock) -> None:
        with pytest.raises(ValidationRejected, match="before end"):
            await get_windowed_stats(mock_db_session, "M1", DeviceClass.METER, END, T0)

    @pytest.mark.asyncio()
    async def test_zero_width_window_rejected(self, mock_db_session: AsyncMock) -> None:
        with pytest.raises(ValidationRejected):
            await get_windowed_stats(mock_db_session, "M1", DeviceClass.METER, T0, T0)


class TestCurrentStatus:
    """get_current_status reads through the cache."""

    @pytest.mark.asyncio()
    async def test_cache_hit_skips_database(self, mock_db_session: AsyncMock) -> None:
        cached = CurrentState(
            device_id="M1",
            device_class=DeviceClass.METER,
            ts=T0,
            metrics=MeterMetrics(energy_consumed_kwh=45.5, voltage_v=240.5),
            last_updated=T0,
        )
        with (
            patch(f"{_ANALYTICS}.cache_get_current", AsyncMock(return_value=cached)),
            patch(f"{_ANALYTICS}.cache_set_current", AsyncMock()) as cache_set,
        ):
            state = await get_current_status(mock_db_session, "M1", DeviceClass.METER)

        assert state is cached
        mock_db_session.get.assert_not_awaited()
        cache_set.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_cache_miss_reads_and_caches(self, mock_db_session: AsyncMock) -> None:
        mock_db_session.get.return_value = MeterCurrentState(
            device_id="M1", ts=T0, energy_consumed_kwh=45.5, voltage_v=240.5, last_updated=T0,
        )
        with (
            patch(f"{_ANALYTICS}.cache_get_current", AsyncMock(return_value=None)),
            patch(f"{_ANALYTICS}.cache_set_current", AsyncMock()) as cache_set,
        ):
            state = await get_current_status(mock_db_session, "M1", DeviceClass.METER)

        assert state.ts == T0
        assert state.metrics.energy_consumed_kwh == 45.5
        cache_set.assert_awaited_once_with(state)

    @pytest.mark.asyncio()
    async def test_without_class_checks_meters_then_vehicles(
        self, mock_db_session: AsyncMock,
    ) -> None:
        mock_db_session.get.side_effect = [
            None,
            VehicleCurrentState(
                device_id="V1", ts=T0, state_of_charge_pct=75.5,
                energy_delivered_kwh=38.7, battery_temp_c=28.5, last_updated=T0,
            ),
        ]
        with (
            patch(f"{_ANALYTICS}.cache_get_current", AsyncMock(return_value=None)),
            patch(f"{_ANALYTICS}.cache_set_current", AsyncMock()),
        ):
            state = await get_current_status(mock_db_session, "V1")

        assert state.device_class is DeviceClass.VEHICLE
        looked_up = [call.args[0] for call in mock_db_session.get.await_args_list]
        assert looked_up == [MeterCurrentState, VehicleCurrentState]

    @pytest.mark.asyncio()
    async def test_unknown_device(self, mock_db_session: AsyncMock) -> None:
        mock_db_session.get.return_value = None
        with (
            patch(f"{_ANALYTICS}.cache_get_current", AsyncMock(return_value=None)),
            patch(f"{_ANALYTICS}.cache_set_current", AsyncMock()),
            pytest.raises(DeviceUnknown),
        ):
            await get_current_status(mock_db_session, "X9")


class TestEfficiencyRatio:
    """get_efficiency_ratio divides delivered by consumed energy."""

    @pytest.mark.asyncio()
    async def test_ratio_for_mapped_vehicle(self, mock_db_session: AsyncMock) -> None:
        mock_db_session.execute.side_effect = [
            scalars_result(["M1"]),
            stats_result(1, 45.5, 45.5, 45.5, 45.5),
            stats_result(1, 38.7, 38.7, 38.7, 38.7),
        ]

        ratio = await get_efficiency_ratio(mock_db_session, "V1", T0, END, at=T0)

        assert ratio == pytest.approx(0.8505, abs=1e-4)
        _, meter_params = _sql_and_params(mock_db_session, call=1)
        _, vehicle_params = _sql_and_params(mock_db_session, call=2)
        assert meter_params["device_id"] == "M1"
        assert vehicle_params["device_id"] == "V1"

    @pytest.mark.asyncio()
    async def test_zero_consumption_is_undefined(self, mock_db_session: AsyncMock) -> None:
        mock_db_session.execute.side_effect = [
            scalars_result(["M1"]),
            stats_result(2, 0.0, 0.0, 0.0, 0.0),
        ]

        with pytest.raises(DivisionUndefined):
            await get_efficiency_ratio(mock_db_session, "V1", T0, END)

        assert mock_db_session.execute.await_count == 2

    @pytest.mark.asyncio()
    async def test_unmapped_vehicle(self, mock_db_session: AsyncMock) -> None:
        mock_db_session.execute.return_value = scalars_result([])

        with pytest.raises(NoActiveMapping):
            await get_efficiency_ratio(mock_db_session, "V1", T0, END)

    @pytest.mark.asyncio()
    async def test_vehicle_without_readings(self, mock_db_session: AsyncMock) -> None:
        mock_db_session.execute.side_effect = [
            scalars_result(["M1"]),
            stats_result(1, 45.5, 45.5, 45.5, 45.5),
            stats_result(0),
        ]

        with pytest.raises(NoDataInWindow):
            await get_efficiency_ratio(mock_db_session, "V1", T0, END)


class TestLowEfficiencyVehicles:
    """iter_low_efficiency_vehicles streams ratios below the threshold."""

    @pytest.mark.asyncio()
    async def test_yields_rows_in_order(self, mock_db_session: AsyncMock) -> None:
        mock_db_session.stream = AsyncMock(return_value=_StreamRows([
            SimpleNamespace(vehicle_id="V1", ratio=0.62),
            SimpleNamespace(vehicle_id="V3", ratio=0.7),
        ]))

        found = [
            item async for item in iter_low_efficiency_vehicles(
                mock_db_session, 0.8, T0, END, at=T0,
            )
        ]

        assert found == [("V1", 0.62), ("V3", 0.7)]
        stmt, params = mock_db_session.stream.await_args.args
        assert params == {"threshold": 0.8, "start": T0, "end": END, "at": T0}
        sql = str(stmt)
        assert "HAVING COUNT(*) = 1" in sql
        assert "c.kwh <> 0" in sql
        assert "ORDER BY e.vehicle_id" in sql

    @pytest.mark.asyncio()
    async def test_unmapped_vehicles_are_excluded_not_zero(
        self, mock_db_session: AsyncMock,
    ) -> None:
        """Only vehicles with exactly one edge valid at *at* and data on both
        sides are joined; nothing is defaulted to a ratio of 0."""
        mock_db_session.stream = AsyncMock(return_value=_StreamRows([]))

        async for _ in iter_low_efficiency_vehicles(mock_db_session, 0.8, T0, END, at=T0):
            pass

        stmt, _ = mock_db_session.stream.await_args.args
        sql = " ".join(str(stmt).split())
        assert "WHERE valid_from <= :at AND (valid_to IS NULL OR valid_to > :at)" in sql
        assert "FROM edges e JOIN delivered d ON d.device_id = e.vehicle_id" in sql
        assert "JOIN consumed c ON c.device_id = e.meter_id" in sql
        assert "LEFT JOIN" not in sql
        assert "COALESCE" not in sql

    @pytest.mark.asyncio()
    async def test_empty_result(self, mock_db_session: AsyncMock) -> None:
        mock_db_session.stream = AsyncMock(return_value=_StreamRows([]))

        found = [
            item async for item in iter_low_efficiency_vehicles(
                mock_db_session, 0.8, T0, END,
            )
        ]

        assert found == []

    @pytest.mark.asyncio()
    async def test_is_lazy(self, mock_db_session: AsyncMock) -> None:
        """No query runs until the first item is requested."""
        mock_db_session.stream = AsyncMock(return_value=_StreamRows([]))

        iterator = iter_low_efficiency_vehicles(mock_db_session, 0.8, T0, END)

        mock_db_session.stream.assert_not_awaited()
        await iterator.aclose()

    @pytest.mark.asyncio()
    async def test_inverted_window_rejected(self, mock_db_session: AsyncMock) -> None:
        with pytest.raises(ValidationRejected):
            async for _ in iter_low_efficiency_vehicles(mock_db_session, 0.8, END, T0):
                pass
