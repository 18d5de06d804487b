"""
Unit tests for the read views
"""
from datetime import date

from healthtrack import models
from healthtrack.services.records_service import RecordsService, one_year_before
from tests.conftest import PATIENT


def add_test_row(db, component, on, number=None, text=None, **ranges):
    db.add(models.TestResultRow(
        patient_number=PATIENT,
        test_id=f"t-{on.isoformat()}",
        component=component,
        unit="g/dL",
        number_value=number,
        text_value=text,
        date=on,
        **ranges
    ))
    db.commit()


def add_prescription(db, medicine, start, end, patient=PATIENT):
    prescription = models.Prescription(
        patient_number=patient,
        prescription_uuid="g",
        medicine=medicine,
        start_date=start,
        end_date=end,
        morning=True
    )
    db.add(prescription)
    db.commit()
    db.refresh(prescription)
    return prescription


def add_streak(db, prescription, on, **slots):
    db.add(models.MedicationStreak(prescription_id=prescription.id, medicine_name=prescription.medicine, date=on, **slots))
    db.commit()


class TestHealthTrends:

    def test_groups_by_normalized_component_newest_first(self, db):
        add_test_row(db, "Hemoglobin", date(2024, 1, 10), number=12.9, normal_range_min=13.0, normal_range_max=17.0)
        add_test_row(db, "hemoglobin ", date(2024, 5, 10), number=13.6, normal_range_min=13.0, normal_range_max=17.0)
        add_test_row(db, "Urine Test Colour", date(2024, 5, 10), text="Pale yellow", normal_range_text="Pale yellow")

        trends = RecordsService().health_trends(db, PATIENT)

        assert len(trends) == 2
        hemoglobin = next(t for t in trends if t["name"].strip().lower() == "hemoglobin")
        assert hemoglobin["latestValue"] == 13.6
        assert hemoglobin["latestDate"] == "2024-05-10"
        assert [h["date"] for h in hemoglobin["history"]] == ["2024-05-10", "2024-01-10"]
        assert hemoglobin["normalRange"] == "13-17"
        colour = next(t for t in trends if t["name"] == "Urine Test Colour")
        assert colour["latestValue"] == "Pale yellow"
        assert colour["normalRange"] == "Pale yellow"

    def test_other_patients_hidden(self, db):
        add_test_row(db, "Hemoglobin", date(2024, 1, 10), number=12.9)

        assert RecordsService().health_trends(db, "someone-else") == []


class TestImaging:

    def test_older_than_one_year(self, db):
        for on in [date(2024, 5, 1), date(2023, 6, 2), date(2023, 5, 31), date(2021, 3, 3)]:
            db.add(models.ImagingResultRow(result_id=str(on), patient_number=PATIENT, date=on, test="X-Ray"))
        db.commit()

        older = RecordsService().older_imaging_results(db, PATIENT, today=date(2024, 6, 1))

        assert [r["date"] for r in older["results"]] == ["2023-05-31", "2021-03-03"]
        assert older["count"] == 2
        assert older["totalCount"] == 4

    def test_gallery_is_newest_first(self, db):
        for on in [date(2023, 1, 1), date(2024, 2, 2)]:
            db.add(models.ImagingResultRow(result_id=str(on), patient_number=PATIENT, date=on))
        db.commit()

        rows = RecordsService().imaging_results(db, PATIENT)

        assert [r["date"] for r in rows] == ["2024-02-02", "2023-01-01"]

    def test_leap_day_cutoff(self):
        assert one_year_before(date(2024, 2, 29)) == date(2023, 2, 28)


class TestMedications:

    def test_current_includes_full_slot_map(self, db):
        current = add_prescription(db, "Amoxicillin", date(2024, 5, 25), date(2024, 6, 10))
        add_prescription(db, "Old", date(2024, 1, 1), date(2024, 1, 31))
        add_streak(db, current, date(2024, 5, 31), morning=True, night=False)

        meds = RecordsService().current_medications(db, PATIENT, today=date(2024, 6, 1))

        assert [m["medicine"] for m in meds] == ["Amoxicillin"]
        assert meds[0]["streak"] == {
            "2024-05-31": {"morning": True, "afternoon": False, "evening": False, "night": False}
        }

    def test_past_is_end_before_today(self, db):
        add_prescription(db, "Current", date(2024, 5, 25), date(2024, 6, 1))
        add_prescription(db, "Old", date(2024, 1, 1), date(2024, 5, 31))

        past = RecordsService().past_medications(db, PATIENT, today=date(2024, 6, 1))

        assert [m["medicine"] for m in past] == ["Old"]

    def test_streak_map_keeps_only_taken_slots(self, db):
        prescription = add_prescription(db, "Amoxicillin", date(2024, 5, 25), date(2024, 6, 10))
        add_streak(db, prescription, date(2024, 5, 30), morning=True, night=False)
        add_streak(db, prescription, date(2024, 5, 31), morning=False)

        streaks = RecordsService().streak_map(db, PATIENT)

        assert streaks == {str(prescription.id): {"2024-05-30": {"morning": True}}}
