from src.inference.compatibility import (
    bucket_for,
    compatible_types,
    is_compatible,
    legacy_is_compatible,
)


def test_heart_disease_accepts_symptom_analysis():
    assert is_compatible("heart_disease", "heart_disease")
    assert is_compatible("symptom_analysis", "heart_disease")
    assert not is_compatible("image_classification", "heart_disease")


def test_image_classification_is_its_own_category():
    assert is_compatible("image_classification", "image_classification")
    assert not is_compatible("symptom_analysis", "image_classification")


def test_unknown_analysis_type_only_matches_itself():
    assert compatible_types("ecg_rhythm") == ["ecg_rhythm"]
    assert is_compatible("ecg_rhythm", "ecg_rhythm")


def test_missing_model_type_never_matches():
    assert not is_compatible(None, "heart_disease")
    assert not legacy_is_compatible(None, "heart_disease")
    assert not legacy_is_compatible("", "heart_disease")
    assert not legacy_is_compatible("_ ", "heart_disease")  # Normalises to empty


def test_legacy_matcher_tolerates_naming_drift():
    assert legacy_is_compatible("Heart Disease", "heart_disease")
    assert legacy_is_compatible("HeartDisease_v2", "heart_disease")
    assert legacy_is_compatible("Symptom Analysis", "heart_disease")
    assert legacy_is_compatible("image", "image_classification")  # Containment either way
    assert not legacy_is_compatible("retina_scan", "heart_disease")


def test_exact_matcher_rejects_drifted_names():
    assert not is_compatible("Heart Disease", "heart_disease")


def test_buckets():
    assert bucket_for("heart_disease") == "heart_disease"
    assert bucket_for("symptom_analysis") == "heart_disease"
    assert bucket_for("image_classification") == "image_classification"
    assert bucket_for("ecg_rhythm") is None
    assert bucket_for(None) is None
