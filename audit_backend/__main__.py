# audit_backend/__main__.py
import uvicorn

from audit_backend import config
from audit_backend.app import app


def main():
    uvicorn.run(app, host=config.HOST, port=config.PORT)


if __name__ == "__main__":
    main()
