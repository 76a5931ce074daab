from fastapi.encoders import jsonable_encoder

def ok(data=None, message: str = "") -> dict:
    return {"success": True, "message": message, "data": jsonable_encoder(data)}
