from pydantic import BaseModel


class SpaceOut(BaseModel):
    id: int
    lot_id: int
    label: str
    state: str

    class Config:
        from_attributes = True


class SpaceStatusUpdate(BaseModel):
    disabled: bool
