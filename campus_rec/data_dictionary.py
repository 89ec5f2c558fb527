"""
campus_rec/data_dictionary.py

Column -> description for the joined campus recreation dataset.
Written into artifacts/data_schema.json so the reporting side knows what each
field means.
"""

DATA_DICTIONARY = {
    "student_id": "Unique identifier for the student (not used as a model feature).",
    "cohort_year": "Year the student entered the institution (scenario filter, not a feature).",
    "student_type": "Entry type: FTIC (first-time-in-college) or Transfer (scenario filter).",
    "gender": "Self-reported gender.",
    "ethnicity": "Reported race/ethnicity category.",
    "first_generation": "First-generation college student (Yes/No).",
    "pell_eligible": "Pell grant eligibility, a socioeconomic proxy (Yes/No).",
    "residency": "Tuition residency (In-State/Out-of-State).",
    "on_campus_housing": "Lived on campus in the first year (Yes/No).",
    "veteran": "Military veteran status (Yes/No).",
    "college": "College of the declared major at entry.",
    "hs_gpa": "High school GPA (0–4 scale).",
    "test_score": "Best admissions test score on the SAT scale.",
    "first_term_credits": "Credit hours attempted in the first term.",
    "facility_visits": "Recreation facility card swipes in the first year (0 if none).",
    "facility_user": "Any recreation facility visit in the first year (Yes/No).",
    "intramural_count": "Intramural teams joined in the first year (0 if none).",
    "intramural_participant": "Played on any intramural team (Yes/No).",
    "group_fitness_visits": "Group-fitness classes attended in the first year (0 if none).",
    "apr_retained": "Outcome: 1 = met the academic-progress GPA threshold at the checkpoint.",
    "graduated_4yr": "Outcome: 1 = graduated within four years (missing for recent cohorts).",
}
