from sqladmin import ModelView

from app.profile.models import Profile


class ProfileAdmin(ModelView, model=Profile):
    name = "Profile"
    name_plural = "Profiles"
    icon = "fa-solid fa-id-card"

    column_list = [
        Profile.id,
        Profile.nickname,
        Profile.email,
        Profile.verification_status,
        Profile.id_type,
        Profile.is_admin,
        Profile.created_at,
        Profile.verified_at,
    ]

    column_searchable_list = [
        Profile.id,
        Profile.nickname,
        Profile.email,
    ]

    column_sortable_list = [getattr(Profile, field) for field in Profile.model_fields]

    # Review decisions go through the verification routes so they are broadcast.
    form_excluded_columns = [
        Profile.verification_status,
        Profile.verified_at,
        Profile.rejection_reason,
        Profile.created_at,
        Profile.updated_at,
    ]
