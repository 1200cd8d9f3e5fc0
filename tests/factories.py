import factory
from factory.alchemy import SQLAlchemyModelFactory

from db.models import Organization, Patient, Project, Specimen


class OrganizationFactory(SQLAlchemyModelFactory):
    """Factory for creating Organization rows."""

    class Meta:
        model = Organization
        sqlalchemy_session_persistence = "flush"

    organization_number = factory.Sequence(lambda n: 5000 + n)
    irb_id = factory.Sequence(lambda n: f"IRB-{n:04d}")
    pi_name = factory.Faker("name")
    pi_institute = factory.Faker("company")
    pi_email = factory.Faker("email")


class ProjectFactory(SQLAlchemyModelFactory):
    """Factory for creating Project rows."""

    class Meta:
        model = Project
        sqlalchemy_session_persistence = "flush"

    project_number = factory.Sequence(lambda n: 5000 + n)
    organization = factory.SubFactory(OrganizationFactory)
    disease = factory.Faker("random_element", elements=["AML", "CLL", "Glioma", "MS"])
    specimen_type = factory.Faker("random_element", elements=["Blood", "CSF", "Tissue"])


class PatientFactory(SQLAlchemyModelFactory):
    """Factory for creating Patient rows."""

    class Meta:
        model = Patient
        sqlalchemy_session_persistence = "flush"

    patient_number = factory.Sequence(lambda n: 5000 + n)
    external_id = factory.Sequence(lambda n: f"MRN{n:06d}")
    first_name = factory.Faker("first_name")
    last_name = factory.Faker("last_name")


class SpecimenFactory(SQLAlchemyModelFactory):
    """Factory for creating Specimen rows."""

    class Meta:
        model = Specimen
        sqlalchemy_session_persistence = "flush"

    specimen_number = factory.Sequence(lambda n: 50000 + n)
    project = factory.SubFactory(ProjectFactory)
    tube_id = factory.Sequence(lambda n: f"TUBE-{n:05d}")
    activity_status = "Active"


ALL_FACTORIES = (OrganizationFactory, ProjectFactory, PatientFactory, SpecimenFactory)
