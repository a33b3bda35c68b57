import uvicorn

from .config import HOST, PORT


def main():
    uvicorn.run("profile_compare.main:app", host=HOST, port=PORT)


if __name__ == "__main__":
    main()
