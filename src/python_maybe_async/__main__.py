from python_maybe_async.cli import main

main()
