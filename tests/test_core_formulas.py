"""
Formula-focused unit tests for the core training engine.

Each test verifies a specific formula or boundary of the fitness model,
curve analyzer, zone classifier, progression scorer, phase selector,
recovery assessor, weekly load advice and config loader.

Expected values are hand-computed from the formulas.
"""

from datetime import datetime, timedelta

import pytest

from interval_coach.core.config import (
    CATEGORIES,
    LONG_TIME_CONSTANT,
    SHORT_TIME_CONSTANT,
    FitnessConfig,
)
from interval_coach.core.curve import (
    PowerCurve,
    estimate_threshold,
    fit_critical_power,
    normalize_curve,
    refresh_profile,
)
from interval_coach.core.engine.config_loader import (
    config_from_dict,
    deep_merge,
    load_coach_config,
    load_model_config,
)
from interval_coach.core.fitness import FitnessModel, daily_loads
from interval_coach.core.load_advice import advise_weekly_load, rule_based_load
from interval_coach.core.models import (
    ActivityZones,
    AthleteProfile,
    FitnessState,
    GoalEvent,
    LoadSample,
    PreconditionError,
    WellnessRecord,
    ZoneProgression,
)
from interval_coach.core.phase import PhaseSelector, pick_target_event, weeks_until
from interval_coach.core.recovery import assess_recovery, tier_rank
from interval_coach.core.zones import (
    ProgressionScorer,
    classify,
    classify_all,
    infer_stimulus,
    stimulus_counts,
)

# ---------------------------------------------------------------------------
# Shared helpers
# ---------------------------------------------------------------------------


def _day(start: str, offset: int) -> str:
    return (datetime.strptime(start, "%Y-%m-%d") + timedelta(days=offset)).strftime("%Y-%m-%d")


def _loads(start: str, values: list[float]) -> list[LoadSample]:
    return [LoadSample(_day(start, i), v) for i, v in enumerate(values)]


def _session(date: str, moving: int = 3600, load: float = 50.0, **zones: int) -> ActivityZones:
    return ActivityZones(
        session_id=f"s-{date}",
        date=date,
        moving_seconds=moving,
        zone_seconds=dict(zones),
        load=load,
    )


class FakeOracle:
    """Returns a fixed response for every request and records the calls."""

    def __init__(self, response):
        self.response = response
        self.calls: list[tuple[str, dict]] = []

    def request(self, kind, context):
        self.calls.append((kind, dict(context)))
        return self.response


# =============================================================================
# Fitness model
# =============================================================================


class TestDailyLoads:
    def test_duplicate_dates_are_summed(self):
        samples = [
            LoadSample("2026-01-02", 40),
            LoadSample("2026-01-01", 10),
            LoadSample("2026-01-02", 25),
        ]
        assert daily_loads(samples) == {"2026-01-01": 10.0, "2026-01-02": 65.0}

    def test_negative_load_rejected_at_construction(self):
        with pytest.raises(PreconditionError):
            LoadSample("2026-01-01", -1)


class TestCurrentState:
    """avg' = avg + (load − avg) / C, C_long = 42, C_short = 7."""

    def test_single_day_from_zero(self):
        state = FitnessModel().current_state([LoadSample("2026-01-01", 42.0)])
        assert state.long_avg == pytest.approx(42.0 / LONG_TIME_CONSTANT)
        assert state.short_avg == pytest.approx(42.0 / SHORT_TIME_CONSTANT)
        assert state.form == pytest.approx(1.0 - 6.0)

    def test_rest_days_decay_both_averages(self):
        model = FitnessModel()
        state = model.current_state([LoadSample("2026-01-01", 70.0)], as_of="2026-01-03")
        # Day 1: 70/42, 10; days 2-3: multiplied by (41/42)² and (6/7)²
        assert state.date == "2026-01-03"
        assert state.long_avg == pytest.approx(70 / 42 * (41 / 42) ** 2)
        assert state.short_avg == pytest.approx(10 * (6 / 7) ** 2)

    def test_cold_start_is_zero_not_error(self):
        state = FitnessModel().current_state([], as_of="2026-02-01")
        assert state == FitnessState("2026-02-01", 0.0, 0.0)

    def test_never_negative_for_non_negative_loads(self):
        values = [0, 150, 0, 0, 300, 5, 0, 0, 0, 0, 80] * 5
        for state in FitnessModel().trajectory(_loads("2026-01-01", values)):
            assert state.long_avg >= 0
            assert state.short_avg >= 0

    def test_constant_load_converges_to_mean(self):
        state = FitnessModel().current_state(_loads("2025-01-01", [100.0] * 300))
        assert state.short_avg == pytest.approx(100.0, abs=0.01)
        assert state.long_avg == pytest.approx(100.0, abs=0.1)
        assert abs(state.form) < 0.1

    def test_seed_skips_already_folded_samples(self):
        seed = FitnessState("2026-01-05", 40.0, 30.0)
        history = [LoadSample("2026-01-04", 500.0), LoadSample("2026-01-06", 0.0)]
        state = FitnessModel().current_state(history, seed=seed)
        assert state.date == "2026-01-06"
        assert state.long_avg == pytest.approx(40.0 * 41 / 42)
        assert state.short_avg == pytest.approx(30.0 * 6 / 7)


class TestProjection:
    def test_empty_forecast_matches_zero_load_recurrence(self):
        seed = FitnessState("2026-01-01", 60.0, 80.0)
        projection = FitnessModel().project(seed, [], 10)

        long_avg, short_avg = 60.0, 80.0
        for point in projection:
            long_avg += (0 - long_avg) / 42
            short_avg += (0 - short_avg) / 7
            assert point.long_avg == round(long_avg, 1)
            assert point.short_avg == round(short_avg, 1)
            assert point.planned_load == 0.0
        assert len(projection) == 10
        assert projection.final.date == "2026-01-11"

    def test_fourteen_days_of_rest_from_equal_averages(self):
        seed = FitnessState("2026-03-01", 50.0, 50.0)
        points = list(FitnessModel().project(seed, [], 14))

        longs = [50.0] + [p.long_avg for p in points]
        shorts = [50.0] + [p.short_avg for p in points]
        forms = [0.0] + [p.form for p in points]
        assert all(b < a for a, b in zip(longs, longs[1:]))
        assert all(b < a for a, b in zip(shorts, shorts[1:]))
        # The short average decays faster, so form rises
        assert all(s < l for s, l in zip(shorts[1:], longs[1:]))
        assert forms[1] > 0
        assert (50.0 - shorts[1]) > (50.0 - longs[1])

    def test_projection_is_restartable(self):
        seed = FitnessState("2026-01-01", 30.0, 20.0)
        projection = FitnessModel().project(seed, [100, 0, 80], 5)
        assert list(projection) == list(projection)
        assert projection[0] == list(projection)[0]

    def test_mapping_forecast_by_date(self):
        seed = FitnessState("2026-01-01", 0.0, 0.0)
        projection = FitnessModel().project(seed, {"2026-01-03": 70.0, "2026-02-01": 99.0}, 3)
        assert [p.planned_load for p in projection] == [0.0, 70.0, 0.0]

    def test_horizon_zero_is_empty(self):
        projection = FitnessModel().project(FitnessState("2026-01-01"), [50], 0)
        assert len(projection) == 0
        assert projection.final is None

    @pytest.mark.parametrize(
        "seed, loads, horizon",
        [
            (None, [], 5),
            (FitnessState("2026-01-01"), [], -1),
            (FitnessState("2026-01-01"), [10, -5], 3),
        ],
    )
    def test_invalid_inputs_raise_precondition_error(self, seed, loads, horizon):
        with pytest.raises(PreconditionError):
            FitnessModel().project(seed, loads, horizon)


class TestImpactPreview:
    def test_session_lowers_next_day_form(self):
        preview = FitnessModel().impact_preview(FitnessState("2026-01-01"), 70.0, horizon_days=3)
        # with: long 70/42 = 1.67, short 10.0 → form −8.3; without: 0
        assert preview.with_session[0].form == -8.3
        assert preview.without_session[0].form == 0.0
        assert preview.form_delta[0] == -8.3
        assert len(preview.form_delta) == 3

    def test_without_session_equals_plain_projection(self):
        model = FitnessModel()
        seed = FitnessState("2026-01-01", 40.0, 45.0)
        preview = model.impact_preview(seed, 90.0, [20, 20], horizon_days=4)
        assert list(preview.without_session) == list(model.project(seed, [20, 20], 4))

    def test_session_load_estimate(self):
        # 60 min at intensity 3: 1 h × 0.83² × 100
        assert FitnessModel().estimate_session_load(3, 60) == 68.9
        assert FitnessModel().estimate_session_load(1, 30) == round(0.5 * 0.55**2 * 100, 1)

    def test_custom_time_constants(self):
        model = FitnessModel(FitnessConfig(long_constant=28.0, short_constant=5.0))
        state = model.current_state([LoadSample("2026-01-01", 140.0)])
        assert state.long_avg == pytest.approx(5.0)
        assert state.short_avg == pytest.approx(28.0)

    def test_ramp_rate_over_a_week(self):
        history = _loads("2026-01-01", [50.0] * 30)
        model = FitnessModel()
        states = model.trajectory(history)
        expected = round(states[-1].long_avg - states[-8].long_avg, 1)
        assert model.ramp_rate(history, as_of=states[-1].date) == expected

    def test_ramp_rate_short_history_measured_from_cold_start(self):
        history = _loads("2026-01-01", [50.0] * 3)
        model = FitnessModel()
        current = model.current_state(history, as_of="2026-01-03")
        assert model.ramp_rate(history, as_of="2026-01-03") == round(current.long_avg, 1)
        assert model.ramp_rate([], as_of="2026-01-03") == 0.0


# =============================================================================
# Curve analyzer
# =============================================================================

# Exact two-parameter model: P(t) = 250 + 20000 / t
_CP_CURVE = {t: 250 + 20000 / t for t in (180, 300, 600, 1200)}


class TestCurve:
    def test_normalize_is_monotone_non_increasing(self):
        curve = normalize_curve({60: 400, 300: 320, 600: 330, 1200: 280, 5: 0})
        assert curve.points == ((60, 400.0), (300, 320.0), (600, 320.0), (1200, 280.0))

    def test_normalize_provider_shape(self):
        curve = normalize_curve({"secs": [5, 60], "watts": [900, 450]})
        assert curve.points == ((5, 900.0), (60, 450.0))

    def test_peak_interpolates(self):
        curve = PowerCurve(((180, 360.0), (300, 320.0)))
        assert curve.peak(240) == pytest.approx(340.0)
        assert curve.peak(60) is None
        assert curve.peak(600) is None

    def test_critical_power_fit_recovers_model(self):
        fit = fit_critical_power(normalize_curve(_CP_CURVE))
        assert fit is not None
        cp, w_prime = fit
        assert cp == pytest.approx(250.0)
        assert w_prime == pytest.approx(20000.0)

    def test_fit_needs_three_points_in_range(self):
        assert fit_critical_power(normalize_curve({60: 500, 300: 330, 1200: 280})) is None

    def test_fallback_chain_order(self):
        sparse = normalize_curve({60: 500, 1200: 300})
        empty = PowerCurve()

        assert estimate_threshold(normalize_curve(_CP_CURVE), AthleteProfile()).source == "critical_power"
        provider = estimate_threshold(sparse, AthleteProfile(estimated_threshold=260))
        assert (provider.threshold, provider.source) == (260, "provider")
        twenty = estimate_threshold(sparse, AthleteProfile(manual_threshold=240))
        assert (twenty.threshold, twenty.source) == (285.0, "twenty_minute")
        manual = estimate_threshold(empty, AthleteProfile(manual_threshold=240))
        assert (manual.threshold, manual.source) == (240, "manual")
        none = estimate_threshold(empty, AthleteProfile())
        assert (none.threshold, none.source) == (None, "none")

    def test_refresh_raises_season_best_only_upward(self):
        curve = normalize_curve(_CP_CURVE)
        raised = refresh_profile(AthleteProfile(season_best_threshold=240), curve)
        assert raised.season_best_threshold == pytest.approx(250.0)
        assert raised.max_sustained_power == pytest.approx(250 + 20000 / 300)

        kept = refresh_profile(AthleteProfile(season_best_threshold=300), curve)
        assert kept.season_best_threshold == 300
        assert kept.effective_threshold == pytest.approx(250.0)


# =============================================================================
# Zone classification and progression
# =============================================================================


class TestClassify:
    @pytest.mark.parametrize(
        "zones",
        [{}, {"z7": 599}, {"z2": 5000}, {"z5": 400, "ss": 900}],
    )
    def test_short_sessions_ignored(self, zones):
        assert classify(_session("2026-01-01", moving=599, **zones)) is None

    @pytest.mark.parametrize("moving", [600, 3600, 18000])
    def test_highest_zone_only_is_vo2max(self, moving):
        exposure = classify(_session("2026-01-01", moving=moving, z7=400))
        assert exposure.stimulus == "vo2max"
        assert exposure.dominant_zone == "z7"
        assert exposure.total_seconds == 400

    def test_sweet_spot_not_counted_in_total(self):
        exposure = classify(_session("2026-01-01", z3=1200, ss=900))
        assert exposure.total_seconds == 1200
        assert exposure.stimulus == "threshold"  # z4 + ss = 900 > 600

    def test_dominant_tie_goes_to_easier_zone(self):
        assert classify(_session("2026-01-01", z2=600, z3=600)).dominant_zone == "z2"

    @pytest.mark.parametrize(
        "zones, expected",
        [
            ({"z5": 200, "z6": 101}, "vo2max"),
            ({"z4": 601}, "threshold"),
            ({"z3": 2000, "ss": 301}, "sweetspot"),
            ({"z2": 1000, "z3": 600}, "tempo"),
            ({"z1": 500, "z2": 3000, "z3": 100}, "endurance"),
            ({"z1": 2000, "z2": 100}, "recovery"),
            ({"z1": 500, "z4": 500}, "endurance"),
        ],
    )
    def test_stimulus_priority(self, zones, expected):
        assert infer_stimulus(zones) == expected

    def test_classify_all_drops_and_orders(self):
        sessions = [
            _session("2026-01-03", z2=3000),
            _session("2026-01-01", moving=300, z2=300),
            _session("2026-01-02", z4=900),
        ]
        assert [e.date for e in classify_all(sessions)] == ["2026-01-02", "2026-01-03"]

    def test_stimulus_counts_window(self):
        exposures = classify_all([
            _session("2026-01-01", z2=3000),
            _session("2026-01-10", z2=3000),
            _session("2026-01-14", z5=400),
        ])
        assert stimulus_counts(exposures, "2026-01-14", 14) == {"endurance": 2, "vo2max": 1}
        assert stimulus_counts(exposures, "2026-01-15", 14) == {"endurance": 1, "vo2max": 1}


class TestProgressionScorer:
    def test_empty_window_is_level_one_stable(self):
        result = ProgressionScorer().score([], as_of="2026-01-31")
        assert set(result) == set(CATEGORIES)
        for p in result.values():
            assert p.level == 1.0
            assert p.trend == "stable"

    def test_sessions_outside_window_ignored(self):
        exposures = classify_all([_session("2025-12-01", z4=3000)])
        result = ProgressionScorer().score(exposures, as_of="2026-01-31")
        assert all(p.level == 1.0 and p.trend == "stable" for p in result.values())

    def test_level_formula(self):
        # 40 threshold minutes: volume 5·40/120, frequency 1/4 weeks, recency 1.0
        exposures = classify_all([_session("2026-01-31", z4=2400)])
        result = ProgressionScorer().score(exposures, as_of="2026-01-31")
        assert result["threshold"].level == round(5 * 40 / 120 + 0.25 + 1.0, 1)
        assert result["threshold"].session_count == 1
        assert result["threshold"].last_trained == "2026-01-31"
        assert result["vo2max"].level == 1.0

    def test_level_is_clamped_to_ten(self):
        sessions = [_session(_day("2026-01-04", i), moving=20000, z6=20000) for i in range(28)]
        result = ProgressionScorer().score(classify_all(sessions), as_of="2026-01-31")
        assert result["anaerobic"].level == 10.0

    def test_trend_improving_with_two_recent_sessions(self):
        exposures = classify_all([_session("2026-01-25", z4=1200), _session("2026-01-30", z4=1200)])
        assert ProgressionScorer().score(exposures, as_of="2026-01-31")["threshold"].trend == "improving"

    def test_trend_declining_after_two_weeks(self):
        exposures = classify_all([_session("2026-01-11", z4=1200)])
        result = ProgressionScorer().score(exposures, as_of="2026-01-31")
        assert result["threshold"].trend == "declining"
        # recency bonus 0.25 for 20 days
        assert result["threshold"].level == round(5 * 20 / 120 + 0.25 + 0.25, 1)

    def test_trend_plateaued_against_previous_snapshot(self):
        exposures = classify_all([_session("2026-01-30", z4=2400)])
        scorer = ProgressionScorer()
        first = scorer.score(exposures, as_of="2026-01-31")
        second = scorer.score(
            exposures,
            as_of="2026-01-31",
            previous_levels={"threshold": first["threshold"].level},
        )
        assert second["threshold"].trend == "plateaued"

    def test_level_outside_bounds_rejected(self):
        with pytest.raises(ValueError):
            ZoneProgression("tempo", level=0.5)


# =============================================================================
# Phase selection
# =============================================================================


class TestPhase:
    def test_weeks_until_floors(self):
        assert weeks_until("2026-01-21", "2026-01-01") == 2
        assert weeks_until("2026-01-01", "2026-01-01") == 0

    @pytest.mark.parametrize(
        "weeks, expected",
        [
            (30, "Base"), (16, "Base"), (15, "Build"), (8, "Build"), (7, "Specialty"),
            (3, "Specialty"), (2, "Taper"), (1, "Taper"), (0, "Race Week"), (None, "Base"),
        ],
    )
    def test_boundaries(self, weeks, expected):
        assert PhaseSelector().by_date(weeks).name == expected

    def test_target_prefers_a_over_earlier_b(self):
        events = [
            GoalEvent("2026-02-01", "B"),
            GoalEvent("2026-06-01", "A"),
            GoalEvent("2025-12-01", "A"),
        ]
        assert pick_target_event(events, "2026-01-01").date == "2026-06-01"

    def test_no_event_is_base(self):
        phase = PhaseSelector().select("2026-01-01", [])
        assert (phase.name, phase.weeks_to_target, phase.source) == ("Base", None, "date")

    def test_oracle_override(self):
        oracle = FakeOracle({"phase": "build", "confidence": "HIGH", "reasoning": "fitness low"})
        events = [GoalEvent("2026-01-29", "A")]
        phase = PhaseSelector(oracle=oracle).select("2026-01-01", events)
        assert phase.name == "Build"
        assert phase.source == "oracle"
        assert phase.confidence == "high"
        assert phase.weeks_to_target == 4
        assert oracle.calls[0][1]["date_phase"] == "Specialty"

    def test_oracle_unknown_phase_ignored(self):
        oracle = FakeOracle({"phase": "Peak"})
        phase = PhaseSelector(oracle=oracle).select("2026-01-01", [GoalEvent("2026-01-29", "A")])
        assert (phase.name, phase.source) == ("Specialty", "date")


# =============================================================================
# Recovery assessment
# =============================================================================


class TestRecovery:
    @pytest.mark.parametrize("score, tier", [(70, "high"), (67, "high"), (50, "moderate"), (10, "low")])
    def test_recovery_score(self, score, tier):
        assert assess_recovery([WellnessRecord("2026-01-01", recovery_score=score)]) == tier

    @pytest.mark.parametrize("hrv, tier", [(59, "high"), (56, "moderate"), (50, "low")])
    def test_hrv_ratio_against_prior_week(self, hrv, tier):
        records = [WellnessRecord(_day("2026-01-01", i), hrv=60) for i in range(7)]
        records.append(WellnessRecord("2026-01-08", hrv=hrv))
        assert assess_recovery(records) == tier

    def test_short_sleep_drops_one_tier(self):
        records = [WellnessRecord("2026-01-01", sleep_hours=4.5, recovery_score=80)]
        assert assess_recovery(records) == "moderate"

    def test_no_data_is_unknown(self):
        assert assess_recovery([]) == "unknown"
        assert assess_recovery([WellnessRecord("2026-01-01")]) == "unknown"

    def test_unknown_ranks_as_moderate(self):
        assert tier_rank("unknown") == tier_rank("moderate")
        assert tier_rank("low") < tier_rank("moderate") < tier_rank("high")


# =============================================================================
# Weekly load advice
# =============================================================================


class TestLoadAdvice:
    def test_rule_load_achieves_phase_ramp(self):
        state = FitnessState("2026-01-01", 50.0, 55.0)
        advice = rule_based_load(state, "Base")
        long_avg = state.long_avg
        for _ in range(7):
            long_avg += (advice.daily_load - long_avg) / 42
        assert long_avg - state.long_avg == pytest.approx(5.0, abs=0.05)
        assert advice.weekly_load == pytest.approx(advice.daily_load * 7, abs=1.0)
        assert advice.source == "fallback"

    def test_floor_at_zero(self):
        advice = rule_based_load(FitnessState("2026-01-01", 5.0, 5.0), "Race Week")
        assert advice.weekly_load == 0.0
        assert advice.daily_load == 0.0

    def test_oracle_weekly_load(self):
        oracle = FakeOracle({"weekly_load": 420, "reasoning": "block week"})
        advice = advise_weekly_load(FitnessState("2026-01-01", 50.0, 50.0), "Build", oracle)
        assert (advice.weekly_load, advice.daily_load, advice.source) == (420.0, 60.0, "oracle")
        assert advice.reasoning == "block week"

    @pytest.mark.parametrize("response", [{"weekly_load": -10}, {"weekly_load": "lots"}, {}, None])
    def test_invalid_oracle_load_falls_back(self, response):
        state = FitnessState("2026-01-01", 50.0, 50.0)
        advice = advise_weekly_load(state, "Build", FakeOracle(response))
        assert advice == rule_based_load(state, "Build")


# =============================================================================
# Config loader
# =============================================================================


class TestConfigLoader:
    @pytest.fixture(autouse=True)
    def _isolated_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        monkeypatch.delenv("INTERVAL_COACH_ORACLE_URL", raising=False)
        monkeypatch.delenv("INTERVAL_COACH_ORACLE_KEY", raising=False)

    def test_bundled_defaults(self):
        config = load_coach_config()
        assert config.fitness.long_constant == 42.0
        assert config.zones.plateau_retention == 8
        assert config.selection.default_type == "recovery_spin"
        assert not config.oracle.active

    def test_deep_merge_is_non_destructive(self):
        base = {"a": {"x": 1, "y": 2}, "b": 1}
        merged = deep_merge(base, {"a": {"y": 3}})
        assert merged == {"a": {"x": 1, "y": 3}, "b": 1}
        assert base["a"]["y"] == 2

    def test_unknown_keys_ignored(self):
        config = config_from_dict({"fitness": {"long_constant": 28, "bogus": 1}, "nope": {}})
        assert config.fitness.long_constant == 28
        assert config.fitness.short_constant == 7.0

    def test_user_override_file(self, tmp_path):
        user_dir = tmp_path / ".interval-coach"
        user_dir.mkdir()
        (user_dir / "coach.yaml").write_text("selection:\n  default_ceiling: 2\n")
        assert load_coach_config().selection.default_ceiling == 2

    def test_malformed_file_warns_and_is_ignored(self, tmp_path):
        bad = tmp_path / "bad.yaml"
        bad.write_text("fitness: [unclosed\n")
        with pytest.warns(UserWarning):
            raw = load_model_config(bad)
        assert raw["fitness"]["long_constant"] == 42.0

    def test_oracle_from_environment(self, monkeypatch):
        monkeypatch.setenv("INTERVAL_COACH_ORACLE_URL", "https://oracle.example/advise")
        monkeypatch.setenv("INTERVAL_COACH_ORACLE_KEY", "secret")
        config = load_coach_config()
        assert config.oracle.url == "https://oracle.example/advise"
        assert config.oracle.api_key == "secret"
        assert config.oracle.active

    def test_invalid_time_constant_rejected(self):
        with pytest.raises(ValueError):
            config_from_dict({"fitness": {"long_constant": 0}})
