from phpopt.cli import main

raise SystemExit(main())
