import uvicorn

from saferoute.config import APP_HOST, APP_PORT


if __name__ == "__main__":
    uvicorn.run("saferoute.main:app", host=APP_HOST, port=APP_PORT)
