from ambient_id.cli import main

main()
