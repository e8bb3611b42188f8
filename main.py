import argparse
import os

import uvicorn


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the QuizForge API server.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--data-dir", help="Directory for the database and snapshots")
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    if args.data_dir:
        # read by quizforge.config on import
        os.environ["QUIZFORGE_DATA_DIR"] = args.data_dir

    uvicorn.run("quizforge.app:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
