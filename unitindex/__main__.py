from unitindex.cli import main

main()
