from fee_roster.infra.cli import main

raise SystemExit(main())
