from enum import Enum


class BaseEnum(Enum):
    @classmethod
    def choices(cls):
        return [(item.value, item.name) for item in cls]

    @classmethod
    def values(cls):
        return [item.value for item in cls]


class UserRole(BaseEnum):
    SUPERADMIN = "superadmin"
    SUBADMIN = "subadmin"
    STUDENT = "student"


class UserProvider(BaseEnum):
    OTP = "otp"
    GOOGLE = "google"


class ProfileImageSource(BaseEnum):
    GOOGLE = "google"
    UPLOAD = "upload"
