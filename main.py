from app.fetcher.run import main

if __name__ == "__main__":
    # Paths and worker counts come from REPORTFETCH_* environment variables
    # unless overridden on the command line.
    raise SystemExit(main())
