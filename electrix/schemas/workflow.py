from typing import Optional, List, Dict

from pydantic import BaseModel, Field, field_validator


# Construction stages tracked per housing unit, in display order
STATUS_OPTIONS = (
    "Factibilidad",
    "TE1",
    "Empalme",
    "TDA",
    "Canalización",
    "Cableado",
    "Bomba de agua",
    "Alimentador de bomba",
    "Soldadura",
    "Artefactado",
    "Extractores",
    "Pruebas eléctricas",
    "Rotulado",
)

CLIENT_TYPES = ("Constructora", "Particular", "Empresa", "Otro")

DEFAULT_PROJECT_STATUS = "En curso"


class Client(BaseModel):
    id: str
    name: str
    type: str = CLIENT_TYPES[0]
    rut: Optional[str] = None
    created_at: Optional[str] = None

    @field_validator("rut", mode="before")
    @classmethod
    def empty_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None


class Project(BaseModel):
    id: str
    client_id: str
    name: str
    status: str = DEFAULT_PROJECT_STATUS
    created_at: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def null_status(cls, v):
        return DEFAULT_PROJECT_STATUS if v is None else v


class HousingUnit(BaseModel):
    id: str
    project_id: str
    name: str
    status: Dict[str, bool] = Field(default_factory=dict)
    comments: str = ""
    images: List[str] = Field(default_factory=list)
    created_at: Optional[str] = None

    @field_validator("status", "images", "comments", mode="before")
    @classmethod
    def null_to_empty(cls, v, info):
        if v is not None:
            return v
        return {"status": {}, "images": [], "comments": ""}[info.field_name]

    def completed_stages(self) -> List[str]:
        return [stage for stage, done in self.status.items() if done]
