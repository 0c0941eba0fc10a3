from mtb_difficulty.cli import main

main()
