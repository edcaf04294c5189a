from filtro_api.models.client import Client
from filtro_api.models.app_user import AppUser
from filtro_api.models.company import Company
from filtro_api.models.clinical_study import ClinicalStudy
from filtro_api.models.intake_submission import IntakeSubmission, SubmissionCompany

__all__ = ["Client", "AppUser", "Company", "ClinicalStudy", "IntakeSubmission", "SubmissionCompany"]
