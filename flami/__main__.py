from flami.app.cli import main

main()
