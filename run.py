import uvicorn
from dictation.main import app

if __name__ == "__main__":
    uvicorn.run(
        "dictation.main:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
    )
